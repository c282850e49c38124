from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass

from supabase import Client, create_client

logger = logging.getLogger(__name__)

# One client per process, shared by repositories, storage and auth
_CLIENT_SINGLETON: Client | None = None


def get_supabase_client() -> Client | None:
    """The shared Supabase client, or None when Supabase is disabled or not configured."""
    global _CLIENT_SINGLETON
    if os.getenv("SUPABASE_DISABLED", "0") == "1":
        return None
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_ANON_KEY")
    if not url or not key:
        return None
    if _CLIENT_SINGLETON is None:
        _CLIENT_SINGLETON = create_client(url, key)
        logger.info("Supabase client created for %s", url)
    return _CLIENT_SINGLETON


@dataclass(slots=True)
class UserInfo:
    id: str
    email: str | None


class SupabaseAuthAdapter:
    """Validates editor bearer tokens against Supabase Auth.

    Only identity is checked here. Whether the user may edit a given page is
    decided before requests reach this service.

    Without Supabase every token maps to a stable fake user.
    """

    def __init__(self, client: Client | None = None) -> None:
        self._client = client if client is not None else get_supabase_client()

    def validate_token(self, token: str) -> UserInfo:
        if not token:
            raise ValueError("Missing access token")
        if self._client is None:
            digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:12]
            return UserInfo(id=f"fake-{digest}", email=None)
        try:  # pragma: no cover - network
            res = self._client.auth.get_user(token)
        except Exception as exc:  # pragma: no cover - network
            logger.warning("Token validation failed: %s", exc)
            raise ValueError(f"Invalid access token: {exc}") from exc
        user = res.user if res else None  # pragma: no cover - network
        if not user:  # pragma: no cover - network
            raise ValueError("Invalid access token")
        return UserInfo(id=user.id, email=user.email)  # pragma: no cover - network
