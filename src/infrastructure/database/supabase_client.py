from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass

from supabase import Client, create_client


def _supabase_disabled() -> bool:
    return os.getenv("SUPABASE_DISABLED", "0") == "1"


@dataclass(slots=True)
class UserInfo:
    id: str
    email: str | None


class SupabaseAuthAdapter:
    """Resolves a bearer token to the uploading user.

    With SUPABASE_DISABLED=1 every non-empty token maps to a stable fake user.
    """

    def __init__(self, client: Client | None = None) -> None:
        self.disabled = _supabase_disabled()
        self._client = client if client is not None else get_supabase_client()

    def validate_token(self, token: str) -> UserInfo:
        if not token:
            raise ValueError("Missing access token")
        if self.disabled or self._client is None:
            digest = hashlib.sha256(token.encode()).hexdigest()[:10]
            return UserInfo(id=f"fake-{digest}", email=None)
        try:
            user = self._client.auth.get_user(token).user
        except Exception as exc:  # pragma: no cover - network path
            raise ValueError(f"Invalid access token: {exc}") from exc
        if not user:
            raise ValueError("Invalid access token")
        return UserInfo(id=user.id, email=user.email)


_CLIENT: Client | None = None


def get_supabase_client() -> Client | None:
    """Shared client for auth, the equipment_images table and storage; None in local mode."""
    global _CLIENT
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_ANON_KEY")
    if _supabase_disabled() or not url or not key:
        return None
    if _CLIENT is None:
        _CLIENT = create_client(url, key)
    return _CLIENT
