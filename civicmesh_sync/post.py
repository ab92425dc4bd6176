from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from .categories import DEFAULT_CATEGORY, Category


# Python 3.10 fromisoformat only takes 3 or 6 fractional digits.
_FRACTION_RE = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Canonical wire/client timestamp: UTC ISO 8601 with milliseconds and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> datetime | None:
    """
    Best-effort timestamp parsing.

    Accepts datetimes, ISO 8601 strings (with or without a Z suffix) and numeric
    epoch values (seconds, or milliseconds when the magnitude says so).
    Naive values are taken as UTC. Returns None when nothing sensible parses.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = float(value)
        if abs(seconds) >= 1e11:
            seconds = seconds / 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    s = _FRACTION_RE.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", s, count=1)

    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        return None

    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Resolution:
    """Who resolved a post, how, and the evidence they attached."""

    resolved_by: str
    resolution_code: str
    photo_uri: str
    video_uri: str | None = None
    resolved_at: str | None = None


@dataclass(frozen=True)
class Post:
    """Canonical client-side post. Instances are immutable; merges produce new copies."""

    id: str
    title: str = ""
    category: Category = DEFAULT_CATEGORY
    subcategory: str | None = None
    description: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    user_id: str = "unknown"
    created_at: str = ""
    updated_at: str = ""
    photo_uri: str = ""
    video_uri: str | None = None
    on_my_way_by: tuple[str, ...] = ()
    resolution: Resolution | None = None
    is_active: bool = True

    @property
    def effective_timestamp(self) -> str:
        return self.updated_at or self.created_at

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None

    def with_on_my_way(self, user_id: str) -> "Post":
        """Add `user_id` to the on-my-way set; adding an existing id is a no-op."""
        uid = str(user_id)
        if uid in self.on_my_way_by:
            return self
        return replace(self, on_my_way_by=self.on_my_way_by + (uid,))

    def resolved(self, resolution: Resolution) -> "Post":
        return replace(self, resolution=resolution, is_active=False)

    def merged(self, changes: Mapping[str, Any]) -> "Post":
        """
        Shallow-merge `changes` into a copy of this post.

        Raises ValueError for unknown field names or an attempt to change the id.
        """
        unknown = sorted(set(changes) - POST_FIELDS)
        if unknown:
            raise ValueError(f"Unknown post fields: {', '.join(unknown)}")
        if "id" in changes and str(changes["id"]) != self.id:
            raise ValueError("Post id is immutable")

        update = dict(changes)
        if "on_my_way_by" in update:
            update["on_my_way_by"] = unique_ids(update["on_my_way_by"] or ())

        merged = replace(self, **update)
        if merged.resolution is not None and merged.is_active:
            merged = replace(merged, is_active=False)
        return merged

    def changes(self) -> dict[str, Any]:
        """Field mapping suitable for `merged`, excluding the id."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "id"}


POST_FIELDS: frozenset[str] = frozenset(f.name for f in fields(Post))


def unique_ids(values: Iterable[Any]) -> tuple[str, ...]:
    out: list[str] = []
    seen: set[str] = set()
    for item in values:
        uid = str(item)
        if uid in seen:
            continue
        seen.add(uid)
        out.append(uid)
    return tuple(out)


_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def sort_key(post: Post) -> datetime:
    return parse_timestamp(post.effective_timestamp) or _EPOCH


def sort_newest_first(posts: Iterable[Post]) -> list[Post]:
    """Order by effective timestamp (update time, else creation time), newest first."""
    return sorted(posts, key=sort_key, reverse=True)
