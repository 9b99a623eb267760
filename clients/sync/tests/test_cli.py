import io
import json
import logging
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from chatsync.cli import main
from chatsync.errors import ApiError
from chatsync.logging_config import ROOT_LOGGER
from chatsync.result import Result
from chatsync.token_store import load_token, save_token

from helpers.payloads import conversation_payload, make_conversation, message_payload


def _write_frames(path: Path, frames) -> None:
    path.write_text("\n".join(json.dumps(frame) for frame in frames) + "\n", encoding="utf-8")


class CliTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = TemporaryDirectory()
        self.tmp = Path(self._tmpdir.name)
        self.settings = self.tmp / "settings.json"
        self.settings.write_text(json.dumps({"token_path": str(self.tmp / "token.json")}), encoding="utf-8")
        self.stderr = io.StringIO()
        patcher = mock.patch("sys.stderr", self.stderr)
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        logger = logging.getLogger(ROOT_LOGGER)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
        self._tmpdir.cleanup()

    def _rows(self, buffer: io.StringIO):
        return [json.loads(line) for line in buffer.getvalue().splitlines()]


class TestSimulate(CliTestCase):
    def test_new_message_reorders_and_marks_unread(self):
        frames_path = self.tmp / "frames.jsonl"
        _write_frames(
            frames_path,
            [
                {"t": "hydrate", "conversations": [conversation_payload("A", minutes=1), conversation_payload("B", minutes=2)]},
                {"t": "event", "name": ".MessageCreatedEvent", "payload": {"message": message_payload("m1", "A")}},
                {"t": "event", "name": ".UserTyping", "payload": {}},
            ],
        )
        buffer = io.StringIO()

        exit_code = main(["simulate", "--user", "me", str(frames_path)], output=buffer)

        self.assertEqual(exit_code, 0)
        rows = self._rows(buffer)
        self.assertEqual([row["id"] for row in rows], ["A", "B"])
        self.assertTrue(rows[0]["hasUnread"])
        self.assertEqual(rows[0]["lastMessage"], "hi")
        self.assertFalse(rows[1]["hasUnread"])

    def test_open_clears_unread_and_marks_active(self):
        frames_path = self.tmp / "frames.jsonl"
        _write_frames(
            frames_path,
            [
                {"t": "hydrate", "conversations": [conversation_payload("A", has_unread=True)]},
                {"t": "open", "id": "A"},
                {"t": "event", "name": ".MessageCreatedEvent", "payload": {"message": message_payload("m2", "A")}},
            ],
        )
        buffer = io.StringIO()

        self.assertEqual(main(["simulate", str(frames_path)], output=buffer), 0)
        row = self._rows(buffer)[0]
        self.assertFalse(row["hasUnread"])
        self.assertTrue(row["active"])

    def test_stdin_and_close(self):
        frames = [
            {"t": "hydrate", "conversations": [conversation_payload("A")]},
            {"t": "open", "id": "A"},
            {"t": "close", "id": "A"},
            {"t": "read", "id": "A"},
        ]
        stdin = io.StringIO("\n".join(json.dumps(frame) for frame in frames))
        buffer = io.StringIO()
        with mock.patch("sys.stdin", stdin):
            self.assertEqual(main(["simulate", "-"], output=buffer), 0)
        self.assertFalse(self._rows(buffer)[0]["active"])

    def test_bad_frame_fails(self):
        frames_path = self.tmp / "frames.jsonl"
        frames_path.write_text('{"t": "hydrate", "conversations": []}\nnot json\n', encoding="utf-8")
        self.assertEqual(main(["simulate", str(frames_path)], output=io.StringIO()), 1)
        self.assertIn("line 2", self.stderr.getvalue())

    def test_missing_file_fails(self):
        self.assertEqual(main(["simulate", str(self.tmp / "absent.jsonl")], output=io.StringIO()), 1)


class TestTokenCommands(CliTestCase):
    def test_set_and_clear(self):
        lines = []
        self.assertEqual(main(["token", "--config", str(self.settings), "set", "abc"], output=lines.append), 0)
        self.assertEqual(load_token(self.tmp / "token.json"), "abc")
        self.assertIn("token saved", lines[0])

        self.assertEqual(main(["token", "--config", str(self.settings), "clear"], output=lines.append), 0)
        self.assertIsNone(load_token(self.tmp / "token.json"))
        self.assertEqual(main(["token", "--config", str(self.settings), "clear"], output=lines.append), 0)
        self.assertEqual(lines[-1], "no token stored")


class TestConversationsCommand(CliTestCase):
    def test_requires_token(self):
        self.assertEqual(main(["conversations", "--config", str(self.settings)], output=io.StringIO()), 1)
        self.assertIn("no token stored", self.stderr.getvalue())

    def test_prints_conversations(self):
        save_token("abc", self.tmp / "token.json")
        conversations = [make_conversation("A", last_message=message_payload("m1", "A", content="yo"))]
        fetch = mock.AsyncMock(return_value=Result.success(conversations))
        buffer = io.StringIO()
        with mock.patch("chatsync.cli._fetch_conversations", fetch):
            exit_code = main(["conversations", "--config", str(self.settings)], output=buffer)

        self.assertEqual(exit_code, 0)
        fetch.assert_awaited_once_with("http://localhost:8000/api", "abc", 15.0)
        self.assertEqual(
            self._rows(buffer),
            [{"id": "A", "title": "Chat A", "hasUnread": False, "lastMessage": "yo"}],
        )

    def test_api_failure_exits_nonzero(self):
        save_token("abc", self.tmp / "token.json")
        fetch = mock.AsyncMock(return_value=Result.failure(ApiError(401, "Unauthenticated.")))
        with mock.patch("chatsync.cli._fetch_conversations", fetch):
            exit_code = main(["conversations", "--config", str(self.settings)], output=io.StringIO())
        self.assertEqual(exit_code, 1)
        self.assertIn("Unauthenticated.", self.stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
