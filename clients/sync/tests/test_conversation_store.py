import random
import unittest

from chatsync.conversation_store import ConversationStore

from helpers.payloads import make_conversation, make_message, message_payload


def _store_with(*conversations):
    store = ConversationStore()
    store.hydrate(conversations)
    return store


class TestHydrate(unittest.TestCase):
    def test_orders_by_updated_at_descending(self):
        store = _store_with(make_conversation("A", minutes=1), make_conversation("B", minutes=2))
        self.assertEqual(store.order, ("B", "A"))

    def test_equal_timestamps_keep_input_order(self):
        store = _store_with(
            make_conversation("A", minutes=5),
            make_conversation("B", minutes=5),
            make_conversation("C", minutes=9),
        )
        self.assertEqual(store.order, ("C", "A", "B"))

    def test_replaces_previous_state_and_drops_duplicates(self):
        store = _store_with(make_conversation("old"))
        store.hydrate([make_conversation("A", title="first"), make_conversation("A", title="second")])
        self.assertEqual(store.order, ("A",))
        self.assertEqual(store.get("A").title, "first")
        self.assertNotIn("old", store)

    def test_hydrate_copies_entries(self):
        source = make_conversation("A")
        store = _store_with(source)
        store.mark_read("A")
        store.apply_new_message(make_message("m1", "A"), current_user_id="me")
        self.assertIsNone(source.last_message)
        self.assertFalse(source.has_unread)


class TestApplyNewMessage(unittest.TestCase):
    def test_scenario_other_user_moves_to_front_and_marks_unread(self):
        store = _store_with(make_conversation("A", minutes=1), make_conversation("B", minutes=2))
        self.assertEqual(store.order, ("B", "A"))

        applied = store.apply_new_message(make_message("m1", "A", sender_id="other"), current_user_id="me")

        self.assertTrue(applied)
        self.assertEqual(store.order, ("A", "B"))
        self.assertTrue(store.get("A").has_unread)

    def test_own_message_never_sets_unread(self):
        store = _store_with(make_conversation("A"), make_conversation("B"))
        for active in (None, "A", "B"):
            store.set_active(active)
            store.apply_new_message(make_message("m1", "A", sender_id="me"), current_user_id="me")
            self.assertFalse(store.get("A").has_unread, f"active={active}")

    def test_active_conversation_never_sets_unread(self):
        store = _store_with(make_conversation("A"))
        store.set_active("A")
        store.apply_new_message(make_message("m1", "A", sender_id="other"), current_user_id="me")
        self.assertFalse(store.get("A").has_unread)

    def test_unknown_conversation_is_noop(self):
        store = _store_with(make_conversation("A"))
        self.assertFalse(store.apply_new_message(make_message("m1", "ghost"), current_user_id="me"))
        self.assertEqual(store.order, ("A",))

    def test_first_message_is_adopted(self):
        store = _store_with(make_conversation("A"))
        store.apply_new_message(make_message("m1", "A", content="hello"), current_user_id="me")
        self.assertEqual(store.get("A").last_message.id, "m1")
        self.assertEqual(store.get("A").last_message.content, "hello")

    def test_existing_preview_gets_content_and_time_only(self):
        store = _store_with(make_conversation("A", last_message=message_payload("m0", "A", content="old")))
        incoming = make_message("m1", "A", content="new", minutes=10)
        store.apply_new_message(incoming, current_user_id="me")
        preview = store.get("A").last_message
        self.assertEqual(preview.id, "m0")
        self.assertEqual(preview.content, "new")
        self.assertEqual(preview.created_at, incoming.created_at)

    def test_idempotent(self):
        store = _store_with(make_conversation("A"), make_conversation("B", minutes=3))
        message = make_message("m1", "A")
        store.apply_new_message(message, current_user_id="me")
        once = (store.order, store.get("A").last_message, store.get("A").has_unread)
        store.apply_new_message(message, current_user_id="me")
        self.assertEqual((store.order, store.get("A").last_message, store.get("A").has_unread), once)


class TestMessageUpdateAndDelete(unittest.TestCase):
    def test_update_only_touches_matching_preview(self):
        store = _store_with(
            make_conversation("A", minutes=1, last_message=message_payload("m1", "A", content="before")),
            make_conversation("B", minutes=2),
        )
        self.assertFalse(store.apply_message_update(make_message("m0", "A", content="nope")))
        self.assertTrue(store.apply_message_update(make_message("m1", "A", content="after")))
        self.assertEqual(store.get("A").last_message.content, "after")
        self.assertEqual(store.order, ("B", "A"))

    def test_scenario_delete_last_message_clears_preview_and_moves_front(self):
        store = _store_with(
            make_conversation("A", minutes=1, last_message=message_payload("m1", "A")),
            make_conversation("B", minutes=2),
        )
        self.assertTrue(store.apply_message_delete("A", True, None, False))
        self.assertIsNone(store.get("A").last_message)
        self.assertEqual(store.order, ("A", "B"))

    def test_delete_with_replacement_preview(self):
        store = _store_with(make_conversation("A", last_message=message_payload("m2", "A")))
        replacement = make_message("m1", "A", content="earlier")
        store.apply_message_delete("A", True, replacement, True)
        self.assertEqual(store.get("A").last_message.id, "m1")
        self.assertIsNot(store.get("A").last_message, replacement)
        self.assertTrue(store.get("A").has_unread)

    def test_delete_not_last_keeps_order_but_overwrites_unread(self):
        store = _store_with(
            make_conversation("A", minutes=1, has_unread=True, last_message=message_payload("m2", "A")),
            make_conversation("B", minutes=2),
        )
        store.apply_message_delete("A", False, None, False)
        self.assertEqual(store.order, ("B", "A"))
        self.assertEqual(store.get("A").last_message.id, "m2")
        self.assertFalse(store.get("A").has_unread)

    def test_delete_replacement_from_another_conversation_is_dropped(self):
        store = _store_with(make_conversation("A", last_message=message_payload("m2", "A")))
        with self.assertLogs("chatsync.conversation_store", level="WARNING"):
            store.apply_message_delete("A", True, make_message("x", "B"), False)
        self.assertIsNone(store.get("A").last_message)

    def test_delete_unknown_conversation_is_noop(self):
        store = _store_with(make_conversation("A"))
        self.assertFalse(store.apply_message_delete("ghost", True, None, True))


class TestActiveAndLifecycle(unittest.TestCase):
    def test_scenario_set_active_clears_unread_immediately(self):
        store = _store_with(make_conversation("A", has_unread=True))
        store.set_active("A")
        self.assertEqual(store.active_id, "A")
        self.assertFalse(store.get("A").has_unread)

    def test_set_active_unknown_id_is_recorded(self):
        store = _store_with(make_conversation("A"))
        store.set_active("later")
        self.assertEqual(store.active_id, "later")
        store.set_active(None)
        self.assertIsNone(store.active_id)

    def test_upsert_on_create_is_insert_only(self):
        store = _store_with(make_conversation("A", minutes=5))
        self.assertTrue(store.upsert_on_create(make_conversation("B", title="new")))
        self.assertFalse(store.upsert_on_create(make_conversation("B", title="newer")))
        self.assertEqual(store.order, ("B", "A"))
        self.assertEqual(store.get("B").title, "new")

    def test_remove_clears_active(self):
        store = _store_with(make_conversation("A"), make_conversation("B"))
        store.set_active("A")
        self.assertTrue(store.remove("A"))
        self.assertIsNone(store.active_id)
        self.assertEqual(store.order, ("B",))
        self.assertFalse(store.remove("A"))

    def test_get_falls_back_to_user_tag(self):
        store = _store_with(make_conversation("A", user_tag="bob"))
        self.assertEqual(store.get("bob").id, "A")
        self.assertIsNone(store.get("nobody"))

    def test_unread_ids_follow_display_order(self):
        store = _store_with(
            make_conversation("A", minutes=1, has_unread=True),
            make_conversation("B", minutes=2, has_unread=True),
            make_conversation("C", minutes=3),
        )
        self.assertEqual(store.unread_ids(), ["B", "A"])

    def test_watchers_fire_after_mutation_and_unwatch(self):
        store = _store_with(make_conversation("A"))
        seen = []

        def _record(conversation_id):
            seen.append((conversation_id, store.get("A").has_unread))

        unwatch = store.watch(_record)
        store.apply_new_message(make_message("m1", "A"), current_user_id="me")
        unwatch()
        store.mark_read("A")
        self.assertEqual(seen, [("A", True)])

    def test_reset_clears_everything(self):
        store = _store_with(make_conversation("A"))
        store.set_active("A")
        store.reset()
        self.assertEqual((len(store), store.order, store.active_id), (0, (), None))


def test_display_order_is_always_a_permutation_of_ids():
    rng = random.Random(1234)
    ids = [f"c{index}" for index in range(6)]
    for _ in range(25):
        store = ConversationStore()
        store.hydrate(make_conversation(conv_id, minutes=rng.randint(0, 50)) for conv_id in ids)
        for step in range(40):
            target = rng.choice(ids + ["ghost"])
            if rng.random() < 0.5:
                message = make_message(f"m{step}", target, sender_id=rng.choice(["me", "other"]))
                store.apply_new_message(message, current_user_id="me")
            else:
                store.apply_message_delete(target, rng.random() < 0.5, None, rng.random() < 0.5)
            assert sorted(store.order) == sorted(conv.id for conv in store.ordered())
            assert len(store.order) == len(set(store.order)) == len(store)
            assert set(store.order) == set(ids)
