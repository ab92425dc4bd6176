from __future__ import annotations

import base64
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Protocol, Union, runtime_checkable


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def basic_auth_header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode("utf-8"))
        return "Basic " + token.decode("ascii")

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@runtime_checkable
class SupportsGetCredentials(Protocol):
    def get_credentials(self) -> Credentials: ...


CredentialProvider = Union[Callable[[], Credentials], SupportsGetCredentials]


@dataclass(frozen=True)
class StaticCredentialProvider:
    credentials: Credentials

    def get_credentials(self) -> Credentials:
        return self.credentials


class EnvCredentialProvider:
    """Reads the Basic-auth pair from the environment on every call."""

    def __init__(
        self,
        username_env: str,
        password_env: str,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._username_env = username_env
        self._password_env = password_env
        self._environ = environ

    def get_credentials(self) -> Credentials:
        env = os.environ if self._environ is None else self._environ
        return Credentials(
            username=(env.get(self._username_env) or "").strip(),
            password=(env.get(self._password_env) or "").strip(),
        )


def resolve_credential_provider(provider: CredentialProvider) -> Callable[[], Credentials]:
    """Adapt either provider shape to a zero-argument accessor."""
    if isinstance(provider, SupportsGetCredentials):
        return provider.get_credentials
    if callable(provider):
        return provider
    raise TypeError("credential provider must be callable or expose get_credentials()")
