from __future__ import annotations

import io
import json
import tempfile
import unittest
from pathlib import Path

from civicmesh_sync.event_log import EventLog, redact_url


class TestEventLog(unittest.TestCase):
    def test_writes_one_json_object_per_line(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "logs" / "events.jsonl"
            with EventLog.open(path, session_id="s1") as log:
                log.info("gateway_request", operation="list_posts", mode="mock")
                log.warning("media_upload_failed", url="https://u:p@api.example.com/upload-image/1")

            lines = path.read_text(encoding="utf-8").splitlines()

        records = [json.loads(line) for line in lines]
        self.assertEqual([r["event"] for r in records], ["gateway_request", "media_upload_failed"])
        self.assertEqual(records[0]["level"], "INFO")
        self.assertEqual(records[0]["session_id"], "s1")
        self.assertEqual(records[0]["data"], {"operation": "list_posts", "mode": "mock"})
        self.assertEqual(records[1]["level"], "WARN")
        self.assertEqual(records[1]["url"], "https://***@api.example.com/upload-image/1")

    def test_appends_unless_overwrite(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "events.jsonl"
            with EventLog.open(path) as log:
                log.info("first")
            with EventLog.open(path) as log:
                log.info("second")
            self.assertEqual(len(path.read_text(encoding="utf-8").splitlines()), 2)

            with EventLog.open(path, overwrite=True) as log:
                log.info("third")
            self.assertEqual(len(path.read_text(encoding="utf-8").splitlines()), 1)

    def test_exception_records_type_and_traceback(self) -> None:
        stream = io.StringIO()
        log = EventLog(stream=stream)
        try:
            raise RuntimeError("kaboom")
        except RuntimeError as e:
            log.exception("command_failed", exc=e)

        record = json.loads(stream.getvalue())
        self.assertEqual(record["level"], "ERROR")
        self.assertEqual(record["data"]["error"]["type"], "RuntimeError")
        self.assertIn("kaboom", record["data"]["error"]["traceback"])

    def test_requires_exactly_one_destination(self) -> None:
        with self.assertRaises(ValueError):
            EventLog()
        with self.assertRaises(ValueError):
            EventLog("x.jsonl", stream=io.StringIO())

    def test_credentials_in_data_values_are_masked(self) -> None:
        stream = io.StringIO()
        log = EventLog(stream=stream, session_id="s2")
        log.info(
            "gateway_partial_failure",
            photo_uri="https://u:p@backend.example.com/image/42",
            attempts=[{"url": "https://u:p@backend.example.com/upload-image/7"}],
        )

        data = json.loads(stream.getvalue())["data"]
        self.assertEqual(data["photo_uri"], "https://***@backend.example.com/image/42")
        self.assertEqual(data["attempts"][0]["url"], "https://***@backend.example.com/upload-image/7")

    def test_redact_url(self) -> None:
        self.assertEqual(redact_url("https://a:b@h/image/1"), "https://***@h/image/1")
        self.assertEqual(redact_url("https://h/image/1"), "https://h/image/1")


if __name__ == "__main__":
    unittest.main()
