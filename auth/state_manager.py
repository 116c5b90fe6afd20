from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

from auth.urls import is_same_origin_return_url

DEFAULT_STATE_TTL_SECONDS = 600
DEFAULT_MAX_ENTRIES = 1000


@dataclass
class OAuthState:
    state: str
    return_url: str
    created_at: float
    expires_at: float


class OAuthStateManager:
    """In-memory registry of outstanding OAuth ``state`` values.

    States are single use and expire after ``ttl_seconds``. When
    ``max_entries`` states are outstanding, the oldest one is evicted to make
    room for a new login attempt.

    Return URLs must be relative paths or sit on one of ``allowed_origins``.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        allowed_origins: set[str] | None = None,
        clock=time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.allowed_origins = set(allowed_origins or ())
        self._clock = clock
        self._states: dict[str, OAuthState] = {}

    def create(self, return_url: str, custom_state: str | None = None) -> str:
        if not is_same_origin_return_url(return_url, self.allowed_origins):
            raise ValueError("Return URL must be same-origin.")

        if len(self._states) >= self.max_entries:
            self._evict_oldest()

        state = custom_state or secrets.token_hex(32)
        now = self._clock()
        self._states[state] = OAuthState(
            state=state,
            return_url=return_url,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        return state

    def validate(self, state: str) -> OAuthState | None:
        oauth_state = self._states.get(state)
        if oauth_state is None:
            return None

        if self._clock() >= oauth_state.expires_at:
            del self._states[state]
            return None
        return oauth_state

    def delete(self, state: str) -> None:
        self._states.pop(state, None)

    def purge_expired(self) -> int:
        now = self._clock()
        expired_states = [
            state for state, oauth_state in self._states.items() if now >= oauth_state.expires_at
        ]
        for state in expired_states:
            del self._states[state]
        return len(expired_states)

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._states),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
        }

    def clear(self) -> None:
        self._states.clear()

    def _evict_oldest(self) -> None:
        if not self._states:
            return
        oldest = min(self._states.values(), key=lambda oauth_state: oauth_state.created_at)
        del self._states[oldest.state]
