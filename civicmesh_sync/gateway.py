from __future__ import annotations

import math
from typing import Any, Callable, Mapping, Protocol, TypeVar, Union

import requests

from .categories import category_info, is_category
from .commands import CreatePostRequest, ResolvePostRequest, Session, SignupRequest
from .config import resolve_use_mock
from .config_schema import AppConfig
from .credentials import CredentialProvider, EnvCredentialProvider, resolve_credential_provider
from .event_log import EventLogger, NullEventLog
from .live import LiveBackend
from .media import MediaResolver, MediaUpload
from .offline import MockBackend, SleepFn
from .post import Post
from .results import GatewayResult
from .retry import RetryEvent, RetryPolicy
from .transport import HttpTransport

T = TypeVar("T")

UseMockFlag = Union[bool, Callable[[], bool]]


class Backend(Protocol):
    def list_posts(self) -> GatewayResult[list[Post]]: ...

    def fetch_post(self, post_id: str) -> GatewayResult[Post]: ...

    def create_post(self, request: CreatePostRequest) -> GatewayResult[Post]: ...

    def mark_on_my_way(self, post_id: str, user_id: str) -> GatewayResult[Post]: ...

    def resolve_post(self, request: ResolvePostRequest) -> GatewayResult[Post]: ...

    def upload_media(
        self, owner_id: str, post_id: str, local_uri: str
    ) -> GatewayResult[MediaUpload]: ...

    def login(self, email: str, password: str) -> GatewayResult[Session]: ...

    def signup(self, request: SignupRequest) -> GatewayResult[Session]: ...


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _valid_coordinate(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def validate_create(request: CreatePostRequest) -> str | None:
    if _blank(request.title) or _blank(request.category) or _blank(request.description):
        return "All fields are required"
    if not is_category(request.category):
        return f"Unknown category: {request.category}"
    if request.subcategory and request.subcategory not in category_info(
        request.category
    ).subcategory_ids():
        return f"Unknown subcategory for {request.category}: {request.subcategory}"
    if not _valid_coordinate(request.latitude) or not _valid_coordinate(request.longitude):
        return "Location is required"
    if _blank(request.photo_uri):
        return "Photo is required"
    return None


def validate_resolve(request: ResolvePostRequest) -> str | None:
    if _blank(request.post_id) or _blank(request.user_id):
        return "Post id and user id are required"
    if _blank(request.resolution_code):
        return "Resolution code is required"
    if _blank(request.resolution_photo_uri):
        return "Resolution photo is required"
    return None


class BackendGateway:
    """
    Single entry point for post and session operations.

    Each call reads the mock/live flag once and dispatches to the matching
    backend. Validation runs before dispatch, so both modes reject the same
    input with the same message. Nothing raises past this class: every
    operation returns a GatewayResult.
    """

    def __init__(
        self,
        *,
        live: Backend | None,
        mock: Backend | None,
        use_mock: UseMockFlag = False,
        logger: EventLogger | None = None,
    ) -> None:
        self._live = live
        self._mock = mock
        self._use_mock = use_mock
        self._log = logger or NullEventLog()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        credentials: CredentialProvider | None = None,
        environ: Mapping[str, str] | None = None,
        logger: EventLogger | None = None,
        session: requests.Session | None = None,
        sleep_fn: SleepFn | None = None,
        use_mock: UseMockFlag | None = None,
    ) -> "BackendGateway":
        """
        Wire live and mock backends from configuration.

        Unless `use_mock` is given, the mode is re-read from config and the
        CIVICMESH_USE_MOCK_API environment override on every call.
        """
        log = logger or NullEventLog()
        provider = credentials or EnvCredentialProvider(
            config.backend.username_env,
            config.backend.password_env,
            environ=environ,
        )
        get_credentials = resolve_credential_provider(provider)

        def _on_retry(event: RetryEvent) -> None:
            log.warning(
                "http_retry",
                operation=event.operation,
                attempt=event.failure_attempt,
                next_attempt=event.next_attempt,
                delay_seconds=round(event.delay_seconds, 3),
                reason=event.reason,
            )

        transport = HttpTransport(
            config.backend.base_url,
            get_credentials,
            timeout_seconds=config.backend.timeout_seconds,
            session=session,
            retry=RetryPolicy.from_settings(config.retry),
            on_retry=_on_retry,
            sleep_fn=sleep_fn,
        )
        media = MediaResolver(
            config.backend.base_url,
            get_credentials,
            transport=transport,
            embed_credentials=config.backend.embed_media_credentials,
        )
        mock = MockBackend(
            posts_fixture=config.mock.posts_fixture,
            users_fixture=config.mock.users_fixture,
            latency_seconds=config.mock.latency_seconds,
            write_latency_seconds=config.mock.write_latency_seconds,
            resolve_media=media.resolve_display_reference,
            sleep_fn=sleep_fn,
        )

        return cls(
            live=LiveBackend(transport, media, logger=log),
            mock=mock,
            use_mock=use_mock
            if use_mock is not None
            else (lambda: resolve_use_mock(config, environ=environ)),
            logger=log,
        )

    def _select(self) -> tuple[str, Backend]:
        flag = self._use_mock() if callable(self._use_mock) else self._use_mock
        mode = "mock" if flag else "live"
        backend = self._mock if flag else self._live
        if backend is None:
            raise RuntimeError(f"No {mode} backend configured")
        return mode, backend

    def _run(self, operation: str, call: Callable[[Backend], GatewayResult[T]]) -> GatewayResult[T]:
        try:
            mode, backend = self._select()
            self._log.info("gateway_request", operation=operation, mode=mode)
            result = call(backend)
        except Exception as e:  # the gateway boundary converts everything to a result
            self._log.error(
                "gateway_request_failed",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            return GatewayResult.failure(str(e) or "Unexpected error", kind="network")

        if not result.ok:
            self._log.warning(
                "gateway_request_failed",
                operation=operation,
                mode=mode,
                kind=result.kind,
                status_code=result.status_code,
                error=result.error,
            )
        for warning in result.warnings:
            self._log.warning("gateway_partial_failure", operation=operation, warning=warning)
        return result

    def list_posts(self) -> GatewayResult[list[Post]]:
        """Active posts, newest first by update time (creation time when never updated)."""
        return self._run("list_posts", lambda b: b.list_posts())

    def fetch_post(self, post_id: str) -> GatewayResult[Post]:
        if _blank(post_id):
            return GatewayResult.failure("Post id is required", kind="validation")
        return self._run("fetch_post", lambda b: b.fetch_post(post_id))

    def create_post(self, request: CreatePostRequest) -> GatewayResult[Post]:
        problem = validate_create(request)
        if problem:
            return GatewayResult.failure(problem, kind="validation")
        return self._run("create_post", lambda b: b.create_post(request))

    def mark_on_my_way(self, post_id: str, user_id: str) -> GatewayResult[Post]:
        if _blank(post_id) or _blank(user_id):
            return GatewayResult.failure("Post id and user id are required", kind="validation")
        return self._run("mark_on_my_way", lambda b: b.mark_on_my_way(post_id, user_id))

    def resolve_post(self, request: ResolvePostRequest) -> GatewayResult[Post]:
        problem = validate_resolve(request)
        if problem:
            return GatewayResult.failure(problem, kind="validation")
        return self._run("resolve_post", lambda b: b.resolve_post(request))

    def upload_media(self, owner_id: str, post_id: str, local_uri: str) -> GatewayResult[MediaUpload]:
        if _blank(local_uri) or _blank(post_id):
            return GatewayResult.failure("Missing media or post id", kind="validation")
        return self._run("upload_media", lambda b: b.upload_media(owner_id, post_id, local_uri))

    def login(self, email: str, password: str) -> GatewayResult[Session]:
        if _blank(email) or not password:
            return GatewayResult.failure("Email and password are required", kind="validation")
        return self._run("login", lambda b: b.login(email, password))

    def signup(self, request: SignupRequest) -> GatewayResult[Session]:
        if any(
            _blank(v)
            for v in (request.email, request.password, request.first_name, request.last_name)
        ):
            return GatewayResult.failure("All fields are required", kind="validation")
        return self._run("signup", lambda b: b.signup(request))
