from __future__ import annotations

import logging

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from auth import pkce
from auth.cors import (
    DEFAULT_CORS_ORIGINS,
    apply_cors_response,
    cors_error_response,
    cors_json_response,
    preflight_route,
)
from auth.errors import AuthErrorCode, format_validation_errors
from auth.pkce import VerifierStore
from auth.schemas import CallbackRequest, CancelRequest, LoginRequest
from auth.state_manager import OAuthStateManager
from auth.storage import STORAGE_UNAVAILABLE_MESSAGE, StorageUnavailable

LOGGER = logging.getLogger("watchlog.auth")

DEFAULT_SCOPES = ["openid", "profile", "email"]

LOGIN_PATH = "/api/auth/login"
CALLBACK_PATH = "/api/auth/callback"
CANCEL_PATH = "/api/auth/cancel"


class LoginFlow:
    """OAuth2 authorization code login with PKCE.

    ``/login`` hands the browser an authorize URL carrying the S256 challenge
    and keeps the verifier server side. ``/callback`` consumes the state and
    verifier and passes them, with the code, to ``complete_login_fn``, which
    owns the token exchange and the user lookup.
    """

    def __init__(
        self,
        *,
        authorize_url: str,
        client_id: str,
        redirect_uri: str,
        verifier_store: VerifierStore,
        state_manager: OAuthStateManager,
        complete_login_fn,
        scopes: list[str] | None = None,
        cors_origins: set[str] | None = None,
    ) -> None:
        self.authorize_url = authorize_url
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.verifier_store = verifier_store
        self.state_manager = state_manager
        self.scopes = scopes or list(DEFAULT_SCOPES)
        self.cors_origins = set(DEFAULT_CORS_ORIGINS)
        if cors_origins:
            self.cors_origins.update(cors_origins)

        self._complete_login_fn = complete_login_fn

    def routes(self) -> list[Route]:
        routes = [
            Route(LOGIN_PATH, self._handle_login, methods=["GET"]),
            Route(CALLBACK_PATH, self._handle_callback, methods=["POST"]),
            Route(CANCEL_PATH, self._handle_cancel, methods=["POST"]),
        ]
        for path in (LOGIN_PATH, CALLBACK_PATH, CANCEL_PATH):
            routes.append(preflight_route(path, self.cors_origins))
        return routes

    # -- handlers --------------------------------------------------------------

    async def _handle_login(self, request: Request) -> Response:
        self.state_manager.purge_expired()

        try:
            login_request = LoginRequest.model_validate(dict(request.query_params))
        except ValidationError as error:
            return cors_json_response(
                request, self.cors_origins, format_validation_errors(error), status_code=400
            )

        try:
            state = self.state_manager.create(login_request.return_url)
        except ValueError as error:
            return self._error(request, AuthErrorCode.VALIDATION_ERROR, str(error), 400)

        verifier = self.verifier_store.generate_verifier()
        challenge = await self.verifier_store.derive_challenge(verifier)
        try:
            await self.verifier_store.store(state, verifier)
        except StorageUnavailable as error:
            self.state_manager.delete(state)
            LOGGER.warning("Login aborted, verifier storage unavailable: %s", error)
            return self._error(
                request,
                AuthErrorCode.STORAGE_UNAVAILABLE,
                STORAGE_UNAVAILABLE_MESSAGE,
                503,
            )

        auth_url = pkce.build_authorization_url(
            self.authorize_url,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scopes=self.scopes,
            state=state,
            code_challenge=challenge,
        )
        LOGGER.info("Started login state=%s...", state[:8])
        return cors_json_response(
            request, self.cors_origins, {"authUrl": auth_url, "state": state}
        )

    async def _handle_callback(self, request: Request) -> Response:
        payload = await self._read_json(request)
        if payload is None:
            return self._error(request, AuthErrorCode.VALIDATION_ERROR, "Invalid JSON body.", 400)

        try:
            callback = CallbackRequest.model_validate(payload)
        except ValidationError as error:
            return cors_json_response(
                request, self.cors_origins, format_validation_errors(error), status_code=400
            )

        state = callback.state
        if callback.error:
            await self._abandon(state)
            LOGGER.info("Identity provider returned %s for state=%s...", callback.error, state[:8])
            return self._error(
                request,
                AuthErrorCode.AUTH_FAILED,
                "Authorization was not granted.",
                400,
                {"providerError": callback.error},
            )

        if not callback.code:
            return self._error(
                request, AuthErrorCode.VALIDATION_ERROR, "Authorization code is required.", 400
            )

        pending = self.state_manager.validate(state)
        if pending is None:
            await self.verifier_store.cleanup(state)
            return self._error(
                request,
                AuthErrorCode.AUTH_FAILED,
                "Invalid or expired state parameter.",
                401,
                {"state": "State not found or expired; restart login."},
            )
        self.state_manager.delete(state)

        code_verifier = await self.verifier_store.retrieve(state)
        if code_verifier is None:
            return self._error(
                request,
                AuthErrorCode.AUTH_FAILED,
                "Login session expired; restart login.",
                401,
            )

        try:
            result = await self._complete_login_fn(
                code=callback.code,
                code_verifier=code_verifier,
                redirect_uri=self.redirect_uri,
            )
        except Exception as error:
            LOGGER.warning("Login completion failed for state=%s...: %s", state[:8], error)
            return self._error(
                request,
                AuthErrorCode.PROVIDER_ERROR,
                "Authentication provider unavailable - please try again.",
                502,
            )

        if result is None:
            result = {}
        if not isinstance(result, dict):
            LOGGER.warning(
                "Login completion for state=%s... returned %s, expected a dict",
                state[:8],
                type(result).__name__,
            )
            return self._error(
                request,
                AuthErrorCode.PROVIDER_ERROR,
                "Authentication provider unavailable - please try again.",
                502,
            )

        LOGGER.info("Completed login state=%s...", state[:8])
        return cors_json_response(
            request,
            self.cors_origins,
            {**result, "returnUrl": pending.return_url},
        )

    async def _handle_cancel(self, request: Request) -> Response:
        payload = await self._read_json(request)
        if payload is None:
            return self._error(request, AuthErrorCode.VALIDATION_ERROR, "Invalid JSON body.", 400)

        try:
            cancel = CancelRequest.model_validate(payload)
        except ValidationError as error:
            return cors_json_response(
                request, self.cors_origins, format_validation_errors(error), status_code=400
            )

        await self._abandon(cancel.state)
        return apply_cors_response(request, Response(status_code=204), self.cors_origins)

    # -- helpers ---------------------------------------------------------------

    async def _abandon(self, state: str) -> None:
        self.state_manager.delete(state)
        await self.verifier_store.cleanup(state)

    async def _read_json(self, request: Request) -> dict | None:
        try:
            payload = await request.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    def _error(
        self,
        request: Request,
        code: AuthErrorCode,
        message: str,
        status_code: int,
        details: dict | None = None,
    ) -> Response:
        return cors_error_response(
            request=request,
            allowed_origins=self.cors_origins,
            code=code,
            message=message,
            status_code=status_code,
            details=details,
        )
