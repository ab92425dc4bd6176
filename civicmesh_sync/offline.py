from __future__ import annotations

import json
import time
from importlib import resources
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Sequence

from .commands import CreatePostRequest, ResolvePostRequest, Session, SignupRequest, UserProfile
from .errors import FixtureError
from .media import MediaUpload
from .normalize import ResolveMediaFn, post_from_wire
from .post import Post, Resolution, format_timestamp, sort_newest_first, utc_now
from .results import GatewayResult

SleepFn = Callable[[float], None]


def _millis() -> int:
    return int(time.time() * 1000)


def _read_json_list(path: str | Path | None, default_name: str) -> list[dict[str, Any]]:
    try:
        if path is None:
            bundled = resources.files(__package__).joinpath("fixtures").joinpath(default_name)
            text = bundled.read_text(encoding="utf-8")
            label = f"<bundled {default_name}>"
        else:
            text = Path(path).read_text(encoding="utf-8")
            label = str(path)
    except OSError as e:
        raise FixtureError(f"Failed to read fixture {path or default_name}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise FixtureError(f"Fixture {label} is not valid JSON: {e}") from e

    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise FixtureError(f"Fixture {label} must be a JSON array of objects")
    return data


class MockBackend:
    """
    Network-free backend for offline use and tests.

    Seeds an in-process post collection and user directory from JSON fixtures
    on first use; every mutation stays in memory and is gone on restart.
    Reads and writes sleep for a fixed simulated latency.
    """

    def __init__(
        self,
        *,
        posts: Sequence[dict[str, Any]] | None = None,
        users: Sequence[dict[str, Any]] | None = None,
        posts_fixture: str | Path | None = None,
        users_fixture: str | Path | None = None,
        latency_seconds: float = 0.5,
        write_latency_seconds: float = 1.0,
        resolve_media: ResolveMediaFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._seed_posts = None if posts is None else [dict(p) for p in posts]
        self._seed_users = None if users is None else [dict(u) for u in users]
        self._posts_fixture = posts_fixture
        self._users_fixture = users_fixture
        self._latency = float(latency_seconds)
        self._write_latency = float(write_latency_seconds)
        self._resolve_media = resolve_media
        self._sleep = sleep_fn or time.sleep
        self._lock = Lock()
        self._posts: list[Post] = []
        self._users: list[dict[str, Any]] = []
        self._loaded = False

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            raw_posts = self._seed_posts
            if raw_posts is None:
                raw_posts = _read_json_list(self._posts_fixture, "posts.json")
            raw_users = self._seed_users
            if raw_users is None:
                raw_users = _read_json_list(self._users_fixture, "users.json")
            self._posts = [
                post_from_wire(item, resolve_media=self._resolve_media) for item in raw_posts
            ]
            self._users = [dict(u) for u in raw_users]
            self._loaded = True

    def _find_index(self, post_id: str) -> int | None:
        for i, post in enumerate(self._posts):
            if post.id == post_id:
                return i
        return None

    def _new_post_id(self) -> str:
        taken = {p.id for p in self._posts}
        stamp = _millis()
        candidate = f"post-{stamp}"
        while candidate in taken:
            stamp += 1
            candidate = f"post-{stamp}"
        return candidate

    def list_posts(self) -> GatewayResult[list[Post]]:
        self._sleep(self._latency)
        self._ensure_loaded()
        with self._lock:
            return GatewayResult.success(sort_newest_first(self._posts))

    def fetch_post(self, post_id: str) -> GatewayResult[Post]:
        self._sleep(self._latency)
        self._ensure_loaded()
        with self._lock:
            idx = self._find_index(post_id)
            if idx is None:
                return GatewayResult.failure("Post not found", kind="not_found")
            return GatewayResult.success(self._posts[idx])

    def create_post(self, request: CreatePostRequest) -> GatewayResult[Post]:
        self._sleep(self._write_latency)
        self._ensure_loaded()
        stamp = format_timestamp(utc_now())
        with self._lock:
            post = Post(
                id=self._new_post_id(),
                title=request.title,
                category=request.category,
                subcategory=request.subcategory,
                description=request.description,
                latitude=float(request.latitude or 0.0),
                longitude=float(request.longitude or 0.0),
                user_id=request.user_id or "mock-user",
                created_at=stamp,
                updated_at=stamp,
                photo_uri=request.photo_uri,
                video_uri=request.video_uri,
                on_my_way_by=(),
                is_active=True,
            )
            self._posts.append(post)
        return GatewayResult.success(post)

    def mark_on_my_way(self, post_id: str, user_id: str) -> GatewayResult[Post]:
        self._sleep(self._latency)
        self._ensure_loaded()
        with self._lock:
            idx = self._find_index(post_id)
            if idx is None:
                return GatewayResult.failure("Post not found", kind="not_found")
            updated = self._posts[idx].with_on_my_way(user_id)
            self._posts[idx] = updated
        return GatewayResult.success(updated)

    def resolve_post(self, request: ResolvePostRequest) -> GatewayResult[Post]:
        self._sleep(self._write_latency)
        self._ensure_loaded()
        with self._lock:
            idx = self._find_index(request.post_id)
            if idx is None:
                return GatewayResult.failure("Post not found", kind="not_found")
            resolution = Resolution(
                resolved_by=request.user_id,
                resolution_code=request.resolution_code,
                photo_uri=request.resolution_photo_uri,
                video_uri=request.resolution_video_uri,
                resolved_at=format_timestamp(utc_now()),
            )
            updated = self._posts[idx].resolved(resolution)
            self._posts[idx] = updated
        return GatewayResult.success(updated)

    def upload_media(self, owner_id: str, post_id: str, local_uri: str) -> GatewayResult[MediaUpload]:
        # Nothing to upload to; the on-device reference stays displayable.
        _ = (owner_id, post_id)
        return GatewayResult.success(MediaUpload(url=local_uri, raw={}))

    def login(self, email: str, password: str) -> GatewayResult[Session]:
        self._sleep(self._write_latency)
        self._ensure_loaded()

        normalized = (email or "").strip().casefold()
        with self._lock:
            for user in self._users:
                if str(user.get("email", "")).strip().casefold() != normalized:
                    continue
                if user.get("password") != password:
                    break
                return GatewayResult.success(
                    Session(user=_profile(user), token=f"mock-jwt-token-{_millis()}")
                )
        return GatewayResult.failure("Invalid email or password", kind="validation")

    def signup(self, request: SignupRequest) -> GatewayResult[Session]:
        self._sleep(self._write_latency)
        self._ensure_loaded()

        email = request.email.strip()
        with self._lock:
            if any(
                str(u.get("email", "")).strip().casefold() == email.casefold()
                for u in self._users
            ):
                return GatewayResult.failure("Email already exists", kind="validation")

            user = {
                "id": f"mock-user-{_millis()}",
                "email": email,
                "password": request.password,
                "firstName": request.first_name,
                "lastName": request.last_name,
            }
            self._users.append(user)
        return GatewayResult.success(Session(user=_profile(user), token=f"mock-jwt-token-{_millis()}"))

    def snapshot(self) -> list[Post]:
        """Current in-process collection, unsorted; for tests and diagnostics."""
        self._ensure_loaded()
        with self._lock:
            return list(self._posts)


def _profile(user: dict[str, Any]) -> UserProfile:
    return UserProfile(
        id=str(user.get("id", "")),
        email=str(user.get("email", "")),
        first_name=user.get("firstName") or user.get("first_name"),
        last_name=user.get("lastName") or user.get("last_name"),
    )
