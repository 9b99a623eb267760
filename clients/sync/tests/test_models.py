import unittest
from datetime import datetime, timedelta, timezone

import pytest

from chatsync.errors import PayloadError
from chatsync.models import Conversation, Message, MessagePage, PageMeta, User, parse_timestamp

from helpers.payloads import conversation_payload, message_payload, page_payload


class TestParseTimestamp(unittest.TestCase):
    def test_z_suffix_is_utc(self):
        parsed = parse_timestamp("2024-03-14T12:00:00Z")
        self.assertEqual(parsed, datetime(2024, 3, 14, 12, 0, tzinfo=timezone.utc))

    def test_offset_is_preserved(self):
        parsed = parse_timestamp("2024-03-14T12:00:00+02:00")
        self.assertEqual(parsed.utcoffset(), timedelta(hours=2))

    def test_naive_value_becomes_aware(self):
        parsed = parse_timestamp("2024-03-14T12:00:00")
        self.assertIsNotNone(parsed.tzinfo)

    def test_rejects_garbage(self):
        with self.assertRaises(PayloadError):
            parse_timestamp("yesterday-ish")
        with self.assertRaises(PayloadError):
            parse_timestamp(None)

    def test_naive_value_at_calendar_edge_is_a_payload_error(self):
        with self.assertRaises(PayloadError):
            parse_timestamp("0001-01-01T00:00:00", key="createdAt")


class TestMessagePayload(unittest.TestCase):
    def test_from_payload_coerces_ids_to_strings(self):
        payload = message_payload("m1")
        payload["id"] = 42
        payload["conversationId"] = 7
        payload["senderId"] = 9
        message = Message.from_payload(payload)
        self.assertEqual((message.id, message.conversation_id, message.sender_id), ("42", "7", "9"))

    def test_missing_required_field_raises(self):
        payload = message_payload("m1")
        del payload["conversationId"]
        with self.assertRaises(PayloadError):
            Message.from_payload(payload)

    def test_null_content_is_allowed(self):
        message = Message.from_payload(message_payload("m1", content=None))
        self.assertIsNone(message.content)
        self.assertEqual(message.preview, "")

    def test_attachment_preview(self):
        payload = message_payload("m1", content="")
        payload["attachment"] = {
            "id": 5,
            "data": {"original": "a.png", "type": "image", "size": 10, "mime_type": "image/png"},
            "urls": {"original": "https://cdn/a.png"},
        }
        message = Message.from_payload(payload)
        self.assertEqual(message.attachment.id, "5")
        self.assertEqual(message.attachment.size, 10)
        self.assertEqual(message.preview, "[attachment]")

    def test_round_trip_keeps_camel_case(self):
        payload = message_payload("m1", edited_minutes=5)
        out = Message.from_payload(payload).to_payload()
        self.assertEqual(out["createdAt"], payload["createdAt"])
        self.assertEqual(out["editedAt"], payload["editedAt"])
        self.assertEqual(out["senderId"], "other")


class TestConversationPayload(unittest.TestCase):
    def test_last_message_from_other_conversation_is_rejected(self):
        payload = conversation_payload("c1", last_message=message_payload("m1", "c2"))
        with self.assertRaises(PayloadError):
            Conversation.from_payload(payload)

    def test_participants_are_deduplicated(self):
        alice = {"id": "u1", "name": "Alice"}
        payload = conversation_payload("c1", participants=[alice, dict(alice), {"id": "u2", "name": "Bob"}])
        conversation = Conversation.from_payload(payload)
        self.assertEqual([user.id for user in conversation.participants], ["u1", "u2"])

    def test_display_title_prefers_other_participant(self):
        payload = conversation_payload(
            "c1",
            title="fallback",
            participants=[{"id": "me", "name": "Me"}, {"id": "u2", "name": "Bob"}],
        )
        conversation = Conversation.from_payload(payload)
        self.assertEqual(conversation.display_title("me"), "Bob")
        self.assertEqual(Conversation.from_payload(conversation_payload("c2", title="Room")).display_title("me"), "Room")

    def test_has_unread_defaults_false(self):
        payload = conversation_payload("c1")
        del payload["hasUnread"]
        self.assertFalse(Conversation.from_payload(payload).has_unread)


def test_user_from_payload_keeps_optional_fields():
    user = User.from_payload({"id": 3, "name": "Ann", "tag": "ann", "isEmailVerified": True})
    assert user.id == "3"
    assert user.is_email_verified is True
    assert user.avatar is None


def test_page_meta_has_more_and_fallbacks():
    assert PageMeta(current_page=1, last_page=3).has_more
    assert not PageMeta(current_page=3, last_page=3).has_more
    meta = PageMeta.from_payload(None, fallback_page=2)
    assert (meta.current_page, meta.last_page, meta.per_page) == (2, 2, 30)


def test_message_page_requires_list_data():
    page = MessagePage.from_payload(page_payload([message_payload("m1")], current_page=1, last_page=2))
    assert [message.id for message in page.messages] == ["m1"]
    assert page.meta.has_more
    with pytest.raises(PayloadError):
        MessagePage.from_payload({"data": {"id": "m1"}})
