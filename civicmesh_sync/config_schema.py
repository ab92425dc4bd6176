from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]
PositiveFloat = Annotated[float, Field(gt=0.0)]


class BackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "https://backend-51lr.onrender.com"
    use_mock: bool = False
    timeout_seconds: PositiveFloat = 15.0
    username_env: str = "CIVICMESH_API_USERNAME"
    password_env: str = "CIVICMESH_API_PASSWORD"
    # Legacy: image widgets cannot send headers, so numeric media ids expand to
    # URLs carrying the Basic-auth pair. Disable once the backend signs URLs.
    embed_media_credentials: bool = True

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not re.match(r"^https?://[^/]+", url, flags=re.IGNORECASE):
            raise ValueError("must be an absolute http(s) URL")
        return url

    @field_validator("username_env", "password_env")
    @classmethod
    def _env_names_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class MockConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    posts_fixture: str | None = None
    users_fixture: str | None = None
    latency_seconds: NonNegativeFloat = 0.5
    write_latency_seconds: NonNegativeFloat = 1.0


class RetrySettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_attempts: PositiveInt = 3
    base_delay_seconds: NonNegativeFloat = 0.5
    max_delay_seconds: NonNegativeFloat = 8.0
    jitter_ratio: float = Field(0.25, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _max_delay_covers_base(self) -> "RetrySettings":
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self


class FiltersConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    scopes: list[str] = Field(default_factory=lambda: ["feed", "map"])

    @field_validator("scopes")
    @classmethod
    def _normalize_scopes(cls, v: list[str]) -> list[str]:
        out: list[str] = []
        for item in v:
            scope = (item or "").strip()
            if scope and scope not in out:
                out.append(scope)
        if not out:
            raise ValueError("must contain at least one scope")
        return out


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    backend: BackendConfig = Field(default_factory=BackendConfig)
    mock: MockConfig = Field(default_factory=MockConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    filters: FiltersConfig = Field(default_factory=FiltersConfig)
