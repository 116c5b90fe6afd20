from __future__ import annotations

import base64
import hashlib
import json
import logging
import math
import secrets
import time
import urllib.parse
from dataclasses import asdict, dataclass

from auth.storage import KeyValueStorage, StorageUnavailable

LOGGER = logging.getLogger("watchlog.auth")

KEY_PREFIX = "pkce_verifier_"
VERIFIER_TTL_SECONDS = 5 * 60
VERIFIER_BYTES = 32


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    return _base64url(secrets.token_bytes(VERIFIER_BYTES))


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return _base64url(digest)


def build_authorization_url(
    authorize_url: str,
    *,
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    code_challenge: str,
) -> str:
    query = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
        "scope": " ".join(scopes),
    }
    separator = "&" if urllib.parse.urlparse(authorize_url).query else "?"
    return f"{authorize_url}{separator}{urllib.parse.urlencode(query)}"


@dataclass
class StoredVerifier:
    code_verifier: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @classmethod
    def from_json(cls, raw: object) -> "StoredVerifier | None":
        if not isinstance(raw, str):
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None

        code_verifier = payload.get("code_verifier")
        created_at = payload.get("created_at")
        expires_at = payload.get("expires_at")
        if not isinstance(code_verifier, str) or not code_verifier:
            return None
        if not isinstance(created_at, (int, float)) or isinstance(created_at, bool):
            return None
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            return None
        if not math.isfinite(created_at) or not math.isfinite(expires_at):
            return None
        return cls(code_verifier, float(created_at), float(expires_at))

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))


class VerifierStore:
    """Keeps PKCE verifiers between the authorize redirect and its callback.

    Each verifier lives under ``pkce_verifier_<state>`` for five minutes and
    can be retrieved once. Expiry is checked when the entry is read; there is
    no background sweep.
    """

    def __init__(self, storage: KeyValueStorage, *, clock=time.time) -> None:
        self._storage = storage
        self._clock = clock

    @staticmethod
    def storage_key(state: str) -> str:
        return f"{KEY_PREFIX}{state}"

    def generate_verifier(self) -> str:
        return generate_code_verifier()

    async def derive_challenge(self, verifier: str) -> str:
        return generate_code_challenge(verifier)

    async def store(self, state: str, verifier: str) -> None:
        if not state:
            raise ValueError("state must be a non-empty string.")

        now = self._clock()
        entry = StoredVerifier(
            code_verifier=verifier,
            created_at=now,
            expires_at=now + VERIFIER_TTL_SECONDS,
        )
        await self._storage.set(
            self.storage_key(state),
            entry.to_json(),
            ttl_seconds=VERIFIER_TTL_SECONDS,
        )
        LOGGER.debug("Stored PKCE verifier state=%s...", state[:8])

    async def retrieve(self, state: str) -> str | None:
        try:
            raw = await self._storage.take(self.storage_key(state))
        except StorageUnavailable as error:
            LOGGER.warning("PKCE verifier lookup failed state=%s...: %s", state[:8], error)
            return None

        if raw is None:
            return None

        entry = StoredVerifier.from_json(raw)
        if entry is None:
            LOGGER.warning("Discarded corrupt PKCE verifier entry state=%s...", state[:8])
            return None
        if entry.is_expired(self._clock()):
            LOGGER.debug("Discarded expired PKCE verifier state=%s...", state[:8])
            return None
        return entry.code_verifier

    async def cleanup(self, state: str) -> None:
        try:
            await self._storage.delete(self.storage_key(state))
        except StorageUnavailable as error:
            LOGGER.warning("PKCE verifier cleanup failed state=%s...: %s", state[:8], error)
