from __future__ import annotations

import time
from typing import Any, Mapping
from urllib.parse import quote

from .commands import CreatePostRequest, ResolvePostRequest, Session, SignupRequest, UserProfile
from .errors import GatewayError
from .event_log import EventLogger, NullEventLog
from .media import MediaResolver, MediaUpload, is_local_uri
from .normalize import (
    PostPayload,
    overlay,
    payload_from_post,
    post_from_wire,
    post_to_wire,
    resolution_to_wire,
)
from .post import Post, Resolution, format_timestamp, sort_newest_first, utc_now
from .results import GatewayResult
from .transport import HttpTransport

# Tried in order; the first value that is a JSON array is the post collection.
# A None key means the response body itself.
LIST_COLLECTION_KEYS: tuple[str | None, ...] = ("posts", "results", "data", None)

WIRE_MEDIA_FIELDS = ("image_url", "video_url", "resolution_photo_url", "resolution_video_url")


def extract_collection(
    body: Any, keys: tuple[str | None, ...] = LIST_COLLECTION_KEYS
) -> list[Any] | None:
    for key in keys:
        if key is None:
            candidate = body
        elif isinstance(body, Mapping):
            candidate = body.get(key)
        else:
            continue
        if isinstance(candidate, list):
            return candidate
    return None


def _unwrap_post(body: Any) -> Mapping[str, Any] | None:
    if isinstance(body, Mapping):
        inner = body.get("post")
        return inner if isinstance(inner, Mapping) else body
    return None


def _failure_from_error(e: GatewayError, default_message: str) -> GatewayResult[Any]:
    if e.status_code is None:
        return GatewayResult.failure(str(e) or default_message, kind="network")
    return GatewayResult.failure(
        e.server_message or default_message,
        kind="not_found" if e.status_code == 404 else "server",
        status_code=e.status_code,
    )


def _path_id(value: str) -> str:
    return quote(str(value), safe="")


class LiveBackend:
    """
    Backend operations over authenticated HTTP.

    Every method returns a GatewayResult; transport errors become failures
    carrying the server's message when it sent one.
    """

    def __init__(
        self,
        transport: HttpTransport,
        media: MediaResolver,
        *,
        logger: EventLogger | None = None,
    ) -> None:
        self._transport = transport
        self._media = media
        self._log = logger or NullEventLog()

    def _normalize(self, raw: Mapping[str, Any] | None) -> Post:
        return post_from_wire(raw, resolve_media=self._media.resolve_display_reference)

    def list_posts(self) -> GatewayResult[list[Post]]:
        try:
            body = self._transport.get_json("posts/active/")
        except GatewayError as e:
            return _failure_from_error(e, "Failed to fetch posts")

        items = extract_collection(body)
        if items is None:
            self._log.warning(
                "list_posts_unrecognized_shape",
                body_type=type(body).__name__,
                keys=sorted(body.keys()) if isinstance(body, Mapping) else None,
            )
            items = []

        posts = [self._normalize(item if isinstance(item, Mapping) else None) for item in items]
        return GatewayResult.success(sort_newest_first(posts))

    def fetch_post(self, post_id: str) -> GatewayResult[Post]:
        try:
            body = self._transport.get_json(f"posts/{_path_id(post_id)}")
        except GatewayError as e:
            return _failure_from_error(e, "Failed to fetch post")
        return GatewayResult.success(self._normalize(_unwrap_post(body)))

    def upload_media(self, owner_id: str, post_id: str, local_uri: str) -> GatewayResult[MediaUpload]:
        return self._media.upload_local_media(owner_id, post_id, local_uri)

    def _upload_or_keep(
        self, owner_id: str, post_id: str, uri: str, *, purpose: str
    ) -> tuple[str, str | None]:
        """Upload an on-device file; on failure keep the local URI and return a warning."""
        uploaded = self._media.upload_local_media(owner_id, post_id, uri)
        if uploaded.ok and uploaded.data is not None:
            return uploaded.data.url, None

        warning = f"{purpose} upload failed: {uploaded.error}"
        self._log.warning(
            "media_upload_failed",
            post_id=post_id,
            purpose=purpose,
            error=uploaded.error,
            status_code=uploaded.status_code,
        )
        return uri, warning

    def _wire_media(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Swap display media references in an outgoing payload for wire references."""
        for key in WIRE_MEDIA_FIELDS:
            if key in payload:
                payload[key] = self._media.wire_reference(payload[key])
        return payload

    def create_post(self, request: CreatePostRequest) -> GatewayResult[Post]:
        local_photo = is_local_uri(request.photo_uri)
        payload = post_to_wire(
            PostPayload(
                title=request.title,
                description=request.description,
                category=request.category,
                latitude=float(request.latitude or 0.0),
                longitude=float(request.longitude or 0.0),
                user_id=request.user_id,
                subcategory=request.subcategory,
                created_at=format_timestamp(utc_now()),
                # Device paths mean nothing to the server; the upload attaches the file.
                photo_uri=None if local_photo else request.photo_uri,
                video_uri=request.video_uri,
                is_active=True,
            )
        )
        self._wire_media(payload)

        try:
            body = self._transport.send_json("POST", "posts", payload)
        except GatewayError as e:
            return _failure_from_error(e, "Failed to post")

        created = self._normalize(_unwrap_post(body))
        if not local_photo:
            return GatewayResult.success(created)

        owner = request.user_id or created.user_id
        photo, warning = self._upload_or_keep(owner, created.id, request.photo_uri, purpose="Photo")
        created = created.merged({"photo_uri": photo})
        return GatewayResult.success(created, warnings=(warning,) if warning else ())

    def mark_on_my_way(self, post_id: str, user_id: str) -> GatewayResult[Post]:
        try:
            body = self._transport.send_json(
                "POST", f"posts/{_path_id(post_id)}/on-my-way", {"userId": user_id}
            )
        except GatewayError as e:
            return _failure_from_error(e, "Failed to mark on my way")

        raw = _unwrap_post(body)
        if raw is None or not any(raw.get(k) for k in ("id", "post_id", "postId")):
            # Acknowledgement without the post; read it back.
            fetched = self.fetch_post(post_id)
            if not fetched.ok or fetched.data is None:
                return fetched
            post = fetched.data
        else:
            post = self._normalize(raw)

        return GatewayResult.success(post.with_on_my_way(user_id))

    def resolve_post(self, request: ResolvePostRequest) -> GatewayResult[Post]:
        snapshot = request.post_snapshot
        if snapshot is None:
            fetched = self.fetch_post(request.post_id)
            if not fetched.ok or fetched.data is None:
                return fetched
            snapshot = fetched.data

        warnings: list[str] = []
        photo = request.resolution_photo_uri
        if is_local_uri(photo):
            photo, warning = self._upload_or_keep(
                request.user_id, request.post_id, photo, purpose="Resolution photo"
            )
            if warning:
                warnings.append(warning)

        resolution = Resolution(
            resolved_by=request.user_id,
            resolution_code=request.resolution_code,
            photo_uri=photo,
            video_uri=request.resolution_video_uri,
        )
        payload = post_to_wire(
            payload_from_post(
                snapshot,
                user_id=snapshot.user_id if snapshot.user_id != "unknown" else request.user_id,
                is_active=False,
            )
        )
        payload.update(resolution_to_wire(resolution))
        self._wire_media(payload)

        try:
            body = self._transport.send_json("PUT", f"posts/{_path_id(request.post_id)}", payload)
        except GatewayError as e:
            return _failure_from_error(e, "Failed to resolve post")

        raw = _unwrap_post(body)
        merged = overlay(snapshot, self._normalize(raw), raw)
        # The server may lag on derived fields; what was just submitted wins.
        hydrated = merged.resolved(
            Resolution(
                resolved_by=resolution.resolved_by,
                resolution_code=resolution.resolution_code,
                photo_uri=resolution.photo_uri,
                video_uri=resolution.video_uri,
                resolved_at=format_timestamp(utc_now()),
            )
        )
        return GatewayResult.success(hydrated, warnings=tuple(warnings))

    def login(self, email: str, password: str) -> GatewayResult[Session]:
        try:
            body = self._transport.get_json(
                "login/",
                params={"username": email, "password": password},
                authenticated=False,
            )
        except GatewayError as e:
            return _failure_from_error(e, "Login failed")

        data = body if isinstance(body, Mapping) else {}
        user_id = data.get("user_id") or data.get("id")
        if user_id is None:
            return GatewayResult.failure("Login response did not include a user id", kind="server")

        profile = UserProfile(id=str(user_id), email=email)
        return GatewayResult.success(Session(user=profile, token=_session_token(user_id)))

    def signup(self, request: SignupRequest) -> GatewayResult[Session]:
        payload = {
            "email": request.email,
            "password": request.password,
            "first_name": request.first_name,
            "last_name": request.last_name,
            "username": request.email,
        }
        try:
            body = self._transport.send_json("POST", "users/", payload, authenticated=False)
        except GatewayError as e:
            return _failure_from_error(e, "Signup failed")

        data = body if isinstance(body, Mapping) else {}
        if data.get("id") is None:
            return GatewayResult.failure("Signup response did not include a user id", kind="server")

        profile = UserProfile(
            id=str(data["id"]),
            email=str(data.get("username") or request.email),
            first_name=data.get("first_name") or request.first_name,
            last_name=data.get("last_name") or request.last_name,
        )
        return GatewayResult.success(Session(user=profile, token=_session_token(data["id"])))


def _session_token(user_id: Any) -> str:
    # The backend issues no token; the client keeps a synthetic session marker.
    return f"user-{user_id}-{int(time.time() * 1000)}"
