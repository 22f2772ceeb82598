"""Identity collaborator interface and simple providers."""

from __future__ import annotations

from typing import Optional, Protocol

from .errors import AuthRequired
from .models import UserIdentity


__all__ = ["IdentityProvider", "StaticIdentity", "require_user"]


class IdentityProvider(Protocol):
    """Supplies the current caller, or None when nobody is signed in."""

    def current_user(self) -> Optional[UserIdentity]:
        """Return the authenticated user, if any."""


class StaticIdentity:
    """Identity provider that always reports the same user (or nobody)."""

    def __init__(self, user: Optional[UserIdentity] = None) -> None:
        self._user = user

    def current_user(self) -> Optional[UserIdentity]:
        return self._user


def require_user(identity: IdentityProvider) -> UserIdentity:
    """Return the current user or raise AuthRequired."""
    user = identity.current_user()
    if user is None:
        raise AuthRequired()
    return user
