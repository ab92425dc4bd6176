from __future__ import annotations

from dataclasses import dataclass

from .categories import Category
from .post import Post


@dataclass(frozen=True)
class CreatePostRequest:
    title: str
    category: Category
    description: str
    latitude: float | None
    longitude: float | None
    photo_uri: str
    subcategory: str | None = None
    video_uri: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class ResolvePostRequest:
    post_id: str
    user_id: str
    resolution_code: str
    resolution_photo_uri: str
    resolution_video_uri: str | None = None
    # Last known client copy; the live backend replaces the whole post, so a
    # missing snapshot is fetched first.
    post_snapshot: Post | None = None


@dataclass(frozen=True)
class SignupRequest:
    email: str
    password: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class Session:
    user: UserProfile
    token: str
