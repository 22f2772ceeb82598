"""User profile read/create/update on top of the session store."""

from __future__ import annotations

import logging
from typing import Any

from .errors import BackendUnavailable
from .identity import IdentityProvider, require_user
from .models import Profile
from .store import SessionStore


__all__ = ["get_or_create_profile", "update_profile", "UPDATABLE_PROFILE_FIELDS"]


logger = logging.getLogger(__name__)

UPDATABLE_PROFILE_FIELDS = frozenset({"full_name", "avatar_url"})


async def get_or_create_profile(store: SessionStore, identity: IdentityProvider) -> Profile:
    """
    Fetch the caller's profile, creating an empty one on first access.

    Raises:
        AuthRequired: No authenticated user.
        BackendUnavailable: The store is not configured.
    """
    user = require_user(identity)
    if not store.is_configured:
        raise BackendUnavailable()

    profile = await store.get_profile(user.user_id)
    if profile is not None:
        return profile

    profile = await store.insert_profile(
        {"id": user.user_id, "email": user.email, "full_name": None, "avatar_url": None}
    )
    logger.info("Created profile for user %s", user.user_id)
    return profile


async def update_profile(
    store: SessionStore,
    identity: IdentityProvider,
    changes: dict[str, Any],
) -> Profile:
    """Apply a partial update of full_name / avatar_url to the caller's profile."""
    unknown = set(changes) - UPDATABLE_PROFILE_FIELDS
    if unknown:
        raise ValueError(f"Profile fields cannot be updated: {', '.join(sorted(unknown))}")

    profile = await get_or_create_profile(store, identity)
    if not changes:
        return profile
    return await store.update_profile(profile.id, changes)
