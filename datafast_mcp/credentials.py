"""
Credential Context - the API key a session talks to DataFast with.

The key arrives once per session (query parameter on the HTTP transports,
environment/config on stdio) and is bound to a ContextVar. Everything the
session spawns afterwards inherits the binding, so tool handlers read it
without any shared mutable state.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Iterator, Optional


@dataclass(frozen=True)
class CredentialContext:
    """Opaque bearer credential for the DataFast API."""

    api_key: str = field(repr=False)

    def __post_init__(self):
        if not self.api_key or not self.api_key.strip():
            raise ValueError("API key cannot be empty")
        # Sent in an HTTP header, which only carries ASCII
        if not self.api_key.isascii():
            raise ValueError("API key must be ASCII")

    @property
    def masked(self) -> str:
        """Key with everything but the last 4 characters hidden."""
        tail = self.api_key[-4:] if len(self.api_key) > 8 else ""
        return f"****{tail}"

    def authorization_header(self) -> str:
        return f"Bearer {self.api_key}"

    def __repr__(self) -> str:
        return f"CredentialContext(api_key={self.masked})"

    __str__ = __repr__


_current_credential: ContextVar[Optional[CredentialContext]] = ContextVar(
    "datafast_credential", default=None
)


def current_credential() -> Optional[CredentialContext]:
    """Credential bound to the running session, if any."""
    return _current_credential.get()


@contextmanager
def use_credential(credential: Optional[CredentialContext]) -> Iterator[Optional[CredentialContext]]:
    """Bind a credential for the duration of a session.

    Usage:
        with use_credential(CredentialContext(api_key)):
            await server.run(read_stream, write_stream, options)
    """
    token = _current_credential.set(credential)
    try:
        yield credential
    finally:
        _current_credential.reset(token)


def credential_from_value(value: Optional[str]) -> Optional[CredentialContext]:
    """Build a credential from a raw query/env value, None when missing, blank or non-ASCII."""
    if value is None or not value.strip() or not value.isascii():
        return None
    return CredentialContext(api_key=value.strip())
