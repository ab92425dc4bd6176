from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping
from urllib.parse import quote, unquote, urlsplit
from urllib.request import url2pathname

from .credentials import Credentials
from .errors import GatewayError
from .results import GatewayResult
from .transport import HttpTransport

_ABSOLUTE_RE = re.compile(r"^(https?://|data:|file:/)", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"^\d+$")
_LOCAL_RE = re.compile(r"^(file|content)://", re.IGNORECASE)
_EXTENSION_RE = re.compile(r"\.([A-Za-z0-9]+)(?:[?#]|$)")

OCTET_STREAM = "application/octet-stream"

MIME_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
}

UPLOAD_FIELD = "file"


def is_local_uri(value: str | None) -> bool:
    """True for on-device file references that must be uploaded before the backend can use them."""
    return bool(value) and bool(_LOCAL_RE.match(value.strip()))


def file_extension(uri: str) -> str:
    # The picker sometimes hands out extensionless URIs; those are camera JPEGs.
    match = _EXTENSION_RE.search(urlsplit(uri).path or uri)
    return match.group(1).lower() if match else "jpg"


def guess_mime_type(uri: str) -> str:
    return MIME_TYPES.get(file_extension(uri), OCTET_STREAM)


def read_local_file(uri: str) -> bytes:
    parts = urlsplit(uri)
    if parts.scheme.lower() != "file":
        raise OSError(f"Cannot read {parts.scheme or 'relative'} URI outside the device: {uri}")
    path = Path(url2pathname(unquote(parts.path)))
    return path.read_bytes()


@dataclass(frozen=True)
class MediaUpload:
    url: str
    raw: Mapping[str, Any]


class MediaResolver:
    """
    Converts between display references (what a view renders) and wire
    references (what the backend stores), and uploads on-device media.
    """

    def __init__(
        self,
        base_url: str,
        credentials: Callable[[], Credentials],
        *,
        transport: HttpTransport | None = None,
        embed_credentials: bool = True,
        read_file: Callable[[str], bytes] = read_local_file,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._credentials = credentials
        self._transport = transport
        self._embed_credentials = embed_credentials
        self._read_file = read_file

    def media_url(self, media_id: str | int) -> str:
        return f"{self._base_url}/image/{media_id}"

    def resolve_display_reference(self, raw: Any) -> str:
        """
        Turn a raw backend media value into something a view can render.

        Empty means "no media". Absolute http(s)/data/file references pass
        through. Numeric ids expand to the backend image URL; with embedded
        credentials on, the Basic-auth pair goes into the URL because image
        widgets cannot attach headers. Anything else passes through unchanged.
        """
        if raw is None or isinstance(raw, bool):
            return ""
        value = str(raw).strip()
        if not value:
            return ""
        if _ABSOLUTE_RE.match(value):
            return value
        if _NUMERIC_RE.match(value):
            return self._credentialed_media_url(value)
        return value

    def wire_reference(self, display: Any) -> str | None:
        """
        Inverse of resolve_display_reference for values sent back to the backend.

        Backend image URLs collapse to their numeric id, with or without
        embedded credentials. Any other URL on the backend host loses its
        userinfo. Everything else passes through; empty means None.
        """
        if display is None or isinstance(display, bool):
            return None
        value = str(display).strip()
        if not value:
            return None

        parts = urlsplit(value)
        base = urlsplit(self._base_url)
        if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
            return value
        if parts.hostname != (base.hostname or "").lower() or parts.port != base.port:
            return value

        prefix = f"{base.path.rstrip('/')}/image/"
        if parts.path.startswith(prefix) and not parts.query and not parts.fragment:
            media_id = parts.path[len(prefix) :]
            if _NUMERIC_RE.match(media_id):
                return media_id

        netloc = parts.hostname if parts.port is None else f"{parts.hostname}:{parts.port}"
        return parts._replace(netloc=netloc).geturl()

    def upload_local_media(
        self,
        owner_id: str,
        post_id: str,
        local_uri: str,
    ) -> GatewayResult[MediaUpload]:
        """
        Upload an on-device file as multipart and return its remote URL.

        Never raises; a failed upload is a failure result so callers can keep
        the local reference for display.
        """
        if not local_uri or not post_id:
            return GatewayResult.failure("Missing media or post id", kind="validation")
        if self._transport is None:
            return GatewayResult.failure("No transport configured for uploads", kind="network")

        ext = file_extension(local_uri)
        try:
            content = self._read_file(local_uri)
        except OSError as e:
            return GatewayResult.failure(f"Could not read local media: {e}", kind="validation")

        try:
            body = self._transport.upload_file(
                f"upload-image/{quote(str(owner_id), safe='')}",
                field_name=UPLOAD_FIELD,
                file_name=f"upload.{ext}",
                content=content,
                mime_type=MIME_TYPES.get(ext, OCTET_STREAM),
                params={"post_id": post_id},
            )
        except GatewayError as e:
            if e.status_code is None:
                return GatewayResult.failure(str(e), kind="network")
            return GatewayResult.failure(
                e.server_message or f"Image upload failed ({e.status_code})",
                kind="server",
                status_code=e.status_code,
            )

        raw = body if isinstance(body, Mapping) else {}
        url = self._url_from_upload_response(raw)
        if not url:
            return GatewayResult.failure(
                "Upload response did not include a media reference", kind="server"
            )
        return GatewayResult.success(MediaUpload(url=url, raw=raw))

    def _url_from_upload_response(self, body: Mapping[str, Any]) -> str:
        direct = body.get("image_url") or body.get("url")
        if direct:
            return str(direct)
        media_id = body.get("image_id") or body.get("id") or body.get("imageId")
        if media_id is None or isinstance(media_id, bool) or str(media_id).strip() == "":
            return ""
        return self.media_url(str(media_id).strip())

    def _credentialed_media_url(self, media_id: str) -> str:
        if not self._embed_credentials:
            return self.media_url(media_id)

        creds = self._credentials()
        parts = urlsplit(self._base_url)
        userinfo = f"{quote(creds.username, safe='')}:{quote(creds.password, safe='')}"
        return f"{parts.scheme or 'https'}://{userinfo}@{parts.netloc}{parts.path}/image/{media_id}"
