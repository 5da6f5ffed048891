"""Identity collaborator: who is signed in, and with which token."""

from abc import ABC, abstractmethod

from .config import IdentityConfig


class IdentityProvider(ABC):
    """Supplies the current authenticated user.

    Identity is issued elsewhere; poisync only reads it.
    """

    @abstractmethod
    def current_user_id(self) -> str | None:
        """Return the signed-in user id, or None when nobody is signed in."""

    def token(self) -> str | None:
        """Return a bearer token for the backend, if one is available."""
        return None


class StaticIdentityProvider(IdentityProvider):
    """Identity fixed at construction time (config file or environment)."""

    def __init__(self, user_id: str | None = None, token: str | None = None):
        self._user_id = user_id
        self._token = token

    @classmethod
    def from_config(cls, config: IdentityConfig) -> "StaticIdentityProvider":
        return cls(user_id=config.user_id, token=config.token)

    def current_user_id(self) -> str | None:
        return self._user_id or None

    def token(self) -> str | None:
        return self._token

    def sign_in(self, user_id: str, token: str | None = None) -> None:
        self._user_id = user_id
        self._token = token

    def sign_out(self) -> None:
        self._user_id = None
        self._token = None
