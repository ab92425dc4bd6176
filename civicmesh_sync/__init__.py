from __future__ import annotations

from .categories import CATEGORIES, DEFAULT_CATEGORY, Category
from .commands import CreatePostRequest, ResolvePostRequest, Session, SignupRequest, UserProfile
from .config import load_config, resolve_credentials, resolve_use_mock
from .config_schema import AppConfig
from .credentials import Credentials, StaticCredentialProvider
from .errors import ConfigError, FixtureError, GatewayError
from .filters import FilterCoordinator, FilterSelection
from .gateway import BackendGateway
from .media import MediaResolver
from .normalize import post_from_wire, post_to_wire
from .offline import MockBackend
from .post import Post, Resolution
from .results import GatewayResult
from .store import PostStore

__all__ = [
    "AppConfig",
    "BackendGateway",
    "CATEGORIES",
    "Category",
    "ConfigError",
    "CreatePostRequest",
    "Credentials",
    "DEFAULT_CATEGORY",
    "FilterCoordinator",
    "FilterSelection",
    "FixtureError",
    "GatewayError",
    "GatewayResult",
    "MediaResolver",
    "MockBackend",
    "Post",
    "PostStore",
    "Resolution",
    "ResolvePostRequest",
    "Session",
    "SignupRequest",
    "StaticCredentialProvider",
    "UserProfile",
    "load_config",
    "post_from_wire",
    "post_to_wire",
    "resolve_credentials",
    "resolve_use_mock",
]
