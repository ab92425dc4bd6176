from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping

from .categories import (
    Category,
    category_from_label,
    category_label,
    subcategory_from_label,
    subcategory_label,
)
from .post import Post, Resolution, format_timestamp, parse_timestamp, utc_now

ResolveMediaFn = Callable[[Any], str]

# Backend and client shapes have used all of these for the post identifier.
ID_KEYS: tuple[str, ...] = ("id", "slug", "pk", "uuid", "_id", "postId", "post_id")

_INTEGER_RE = re.compile(r"^-?\d+$")


def _passthrough_media(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _first_truthy(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return None


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _coerce_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _coerce_id(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        key = value.strip().casefold()
        if key in ("true", "1", "yes"):
            return True
        if key in ("false", "0", "no"):
            return False
    if isinstance(value, int):
        return bool(value)
    return None


def _coerce_id_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(_coerce_id(item) for item in value if _coerce_id(item))


def _user_id(raw: Mapping[str, Any]) -> str:
    value = _first(raw, "user_id", "userId")
    if value is None:
        user = raw.get("user")
        value = user.get("id") if isinstance(user, Mapping) else user
    return _coerce_id(value) or "unknown"


def _resolution(raw: Mapping[str, Any], resolve_media: ResolveMediaFn) -> Resolution | None:
    nested = raw.get("resolution")
    if isinstance(nested, Mapping):
        # Shape written by post_to_dict.
        source: Mapping[str, Any] = nested
        photo_keys: tuple[str, ...] = ("photo_uri", "resolution_photo_url")
        video_keys: tuple[str, ...] = ("video_uri", "resolution_video_url")
    else:
        source = raw
        photo_keys = ("resolution_photo_url", "resolutionPhotoUri")
        video_keys = ("resolution_video_url", "resolutionVideoUri")

    resolved_by = _coerce_id(_first(source, "resolved_by", "resolvedBy"))
    code = _coerce_text(_first(source, "resolution_code", "resolutionCode")).strip()
    if not resolved_by and not code:
        return None

    photo = resolve_media(_first(source, *photo_keys))
    video = resolve_media(_first(source, *video_keys))
    resolved_at = parse_timestamp(_first(source, "resolved_at", "resolvedAt"))

    return Resolution(
        resolved_by=resolved_by or "unknown",
        resolution_code=code,
        photo_uri=photo,
        video_uri=video or None,
        resolved_at=format_timestamp(resolved_at) if resolved_at else None,
    )


def post_from_wire(
    raw: Mapping[str, Any] | None,
    *,
    resolve_media: ResolveMediaFn | None = None,
) -> Post:
    """
    Build a canonical Post from a backend (snake_case) or client-shaped item.

    Never raises on partial input: missing fields get empty or default values,
    unknown categories fall back to the default category, and unmatched
    subcategory labels are kept verbatim.
    """
    resolve = resolve_media or _passthrough_media
    now = utc_now()

    if not isinstance(raw, Mapping):
        stamp = format_timestamp(now)
        return Post(id="", created_at=stamp, updated_at=stamp)

    post_id = ""
    for key in ID_KEYS:
        post_id = _coerce_id(raw.get(key))
        if post_id:
            break

    created = parse_timestamp(_first_truthy(raw, "created_at", "createdAt", "timestamp")) or now
    updated = (
        parse_timestamp(_first_truthy(raw, "updated_at", "updatedAt", "timestamp")) or created
    )

    category: Category = category_from_label(raw.get("category"))
    subcategory = subcategory_from_label(category, _first(raw, "subcategory", "sub_category"))

    on_my_way_raw = raw.get("on_my_way_by")
    if not isinstance(on_my_way_raw, (list, tuple)):
        on_my_way_raw = _first(raw, "onMyWayBy", "on_my_way")

    resolution = _resolution(raw, resolve)
    active = _coerce_bool(_first(raw, "is_active", "isActive"))
    if resolution is not None:
        active = False

    return Post(
        id=post_id,
        title=_coerce_text(raw.get("title")),
        category=category,
        subcategory=subcategory,
        description=_coerce_text(_first(raw, "body", "description")),
        latitude=_coerce_float(raw.get("latitude")),
        longitude=_coerce_float(raw.get("longitude")),
        user_id=_user_id(raw),
        created_at=format_timestamp(created),
        updated_at=format_timestamp(updated),
        photo_uri=resolve(_first(raw, "image_url", "photoUri", "imageUrl", "photo_uri")),
        video_uri=resolve(_first(raw, "video_url", "videoUri", "video_uri")) or None,
        on_my_way_by=_coerce_id_list(on_my_way_raw),
        resolution=resolution,
        is_active=True if active is None else active,
    )


@dataclass(frozen=True)
class PostPayload:
    """Fields the backend accepts when creating or replacing a post."""

    title: str
    description: str
    category: Category
    latitude: float
    longitude: float
    user_id: str | int | None = None
    subcategory: str | None = None
    created_at: str | None = None
    photo_uri: str | None = None
    video_uri: str | None = None
    is_active: bool | None = None


def wire_user_id(user_id: str | int | None) -> str | int | None:
    """Numeric-looking ids go over the wire as numbers; anything else stays a string."""
    if user_id is None or isinstance(user_id, bool):
        return None
    if isinstance(user_id, int):
        return user_id
    text = str(user_id).strip()
    if _INTEGER_RE.match(text):
        return int(text)
    return user_id


def post_to_wire(params: PostPayload) -> dict[str, Any]:
    """Map client fields to the backend's field names and label casing."""
    return {
        "title": params.title,
        "body": params.description,
        "user_id": wire_user_id(params.user_id),
        "category": category_label(params.category),
        "subcategory": subcategory_label(params.category, params.subcategory),
        "created_at": params.created_at or format_timestamp(utc_now()),
        "latitude": params.latitude,
        "longitude": params.longitude,
        "image_url": params.photo_uri or None,
        "video_url": params.video_uri or None,
        "is_active": params.is_active if isinstance(params.is_active, bool) else True,
    }


def payload_from_post(post: Post, **overrides: Any) -> PostPayload:
    fields: dict[str, Any] = {
        "title": post.title,
        "description": post.description,
        "category": post.category,
        "latitude": post.latitude,
        "longitude": post.longitude,
        "user_id": post.user_id,
        "subcategory": post.subcategory,
        "created_at": post.created_at or post.updated_at or None,
        "photo_uri": post.photo_uri,
        "video_uri": post.video_uri,
        "is_active": post.is_active,
    }
    fields.update(overrides)
    return PostPayload(**fields)


def resolution_to_wire(resolution: Resolution) -> dict[str, Any]:
    return {
        "resolution_code": resolution.resolution_code,
        "resolved_by": wire_user_id(resolution.resolved_by),
        "resolution_photo_url": resolution.photo_uri,
        "resolution_video_url": resolution.video_uri or None,
    }


def post_to_dict(post: Post) -> dict[str, Any]:
    """JSON-ready client representation (snake_case, lists instead of tuples)."""
    data = asdict(post)
    data["on_my_way_by"] = list(post.on_my_way_by)
    return data


# Wire keys that carry each Post field, used to tell which fields a (possibly
# partial) server response actually supplied.
_FIELD_SOURCES: dict[str, tuple[str, ...]] = {
    "title": ("title",),
    "category": ("category",),
    "subcategory": ("subcategory", "sub_category"),
    "description": ("body", "description"),
    "latitude": ("latitude",),
    "longitude": ("longitude",),
    "user_id": ("user_id", "userId", "user"),
    "created_at": ("created_at", "createdAt", "timestamp"),
    "updated_at": ("updated_at", "updatedAt", "timestamp"),
    "photo_uri": ("image_url", "photoUri", "imageUrl", "photo_uri"),
    "video_uri": ("video_url", "videoUri", "video_uri"),
    "on_my_way_by": ("on_my_way_by", "onMyWayBy", "on_my_way"),
    "is_active": ("is_active", "isActive"),
}


def present_fields(raw: Mapping[str, Any] | None) -> frozenset[str]:
    """Names of Post fields for which `raw` holds a non-empty value."""
    if not isinstance(raw, Mapping):
        return frozenset()
    out: set[str] = set()
    for name, keys in _FIELD_SOURCES.items():
        for key in keys:
            if raw.get(key) not in (None, ""):
                out.add(name)
                break
    return frozenset(out)


def overlay(base: Post, incoming: Post, raw: Mapping[str, Any] | None) -> Post:
    """Union of `base` and the fields of `incoming` that `raw` actually supplied."""
    names = present_fields(raw)
    return base.merged({name: getattr(incoming, name) for name in names})
