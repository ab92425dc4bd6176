from __future__ import annotations

import unittest
from datetime import datetime, timezone

from civicmesh_sync.post import (
    Post,
    Resolution,
    format_timestamp,
    parse_timestamp,
    sort_newest_first,
)


class TestTimestamps(unittest.TestCase):
    def test_format_uses_milliseconds_and_z(self) -> None:
        dt = datetime(2025, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)
        self.assertEqual(format_timestamp(dt), "2025-01-02T03:04:05.678Z")

    def test_parse_accepts_iso_and_epoch(self) -> None:
        expected = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        self.assertEqual(parse_timestamp("2025-01-02T03:04:05Z"), expected)
        self.assertEqual(parse_timestamp("2025-01-02T03:04:05"), expected)
        self.assertEqual(parse_timestamp(expected.timestamp()), expected)
        self.assertEqual(parse_timestamp(expected.timestamp() * 1000), expected)

    def test_parse_accepts_any_fraction_length(self) -> None:
        self.assertEqual(
            parse_timestamp("2025-01-02T03:04:05.12Z"),
            datetime(2025, 1, 2, 3, 4, 5, 120000, tzinfo=timezone.utc),
        )
        self.assertEqual(
            parse_timestamp("2025-01-02T03:04:05.1234567+00:00"),
            datetime(2025, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc),
        )
        self.assertEqual(
            parse_timestamp("2025-01-02T03:04:05.5"),
            datetime(2025, 1, 2, 3, 4, 5, 500000, tzinfo=timezone.utc),
        )

    def test_parse_rejects_garbage(self) -> None:
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp(""))
        self.assertIsNone(parse_timestamp(True))
        self.assertIsNone(parse_timestamp(None))


class TestPost(unittest.TestCase):
    def test_sort_uses_updated_then_created(self) -> None:
        a = Post(id="a", created_at="2025-01-01T00:00:00.000Z", updated_at="2025-01-05T00:00:00.000Z")
        b = Post(id="b", created_at="2025-01-03T00:00:00.000Z", updated_at="")
        c = Post(id="c", created_at="2025-01-04T00:00:00.000Z", updated_at="2025-01-04T00:00:00.000Z")
        self.assertEqual([p.id for p in sort_newest_first([b, a, c])], ["a", "c", "b"])

    def test_with_on_my_way_is_idempotent(self) -> None:
        post = Post(id="p", on_my_way_by=("u1",))
        self.assertIs(post.with_on_my_way("u1"), post)
        self.assertEqual(post.with_on_my_way("u2").on_my_way_by, ("u1", "u2"))

    def test_merged_rejects_unknown_fields_and_id_changes(self) -> None:
        post = Post(id="p")
        with self.assertRaises(ValueError):
            post.merged({"colour": "red"})
        with self.assertRaises(ValueError):
            post.merged({"id": "q"})
        self.assertEqual(post.merged({"id": "p", "title": "x"}).title, "x")

    def test_merged_dedupes_on_my_way_and_forces_inactive_when_resolved(self) -> None:
        post = Post(id="p")
        res = Resolution(resolved_by="u1", resolution_code="DONE", photo_uri="https://x/1.jpg")
        merged = post.merged({"on_my_way_by": ["u1", "u1", "u2"], "resolution": res})
        self.assertEqual(merged.on_my_way_by, ("u1", "u2"))
        self.assertFalse(merged.is_active)
        self.assertTrue(merged.is_resolved)


if __name__ == "__main__":
    unittest.main()
