from __future__ import annotations

import os

from starlette.applications import Starlette

from auth.cors import DEFAULT_CORS_ORIGINS
from auth.login_flow import LoginFlow
from auth.pkce import VerifierStore
from auth.state_manager import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_STATE_TTL_SECONDS,
    OAuthStateManager,
)
from watchlog.constants import APP_VERSION, AUTH_MODE, LOGGER
from watchlog.env import (
    build_storage,
    get_env_int,
    load_env,
    parse_csv_env,
    setup_logging,
    storage_backend,
    validate_env,
)
from watchlog.http import health_routes, load_completion_handler


def create_app(*, complete_login_fn=None, storage=None) -> Starlette:
    load_env()
    setup_logging()
    validate_env()

    if complete_login_fn is None:
        complete_login_fn = load_completion_handler(
            os.getenv("LOGIN_COMPLETION_HANDLER", "").strip()
        )
    if storage is None:
        storage = build_storage()

    scopes = os.getenv("OAUTH_SCOPES", "openid profile email").split()
    frontend_origins = DEFAULT_CORS_ORIGINS | parse_csv_env("FRONTEND_ORIGINS")
    state_manager = OAuthStateManager(
        ttl_seconds=get_env_int("OAUTH_STATE_TTL_SECONDS", DEFAULT_STATE_TTL_SECONDS),
        max_entries=get_env_int("OAUTH_STATE_MAX_ENTRIES", DEFAULT_MAX_ENTRIES),
        allowed_origins=frontend_origins,
    )
    login_flow = LoginFlow(
        authorize_url=os.getenv("OAUTH_AUTHORIZE_URL", "").strip(),
        client_id=os.getenv("OAUTH_CLIENT_ID", "").strip(),
        redirect_uri=os.getenv("OAUTH_REDIRECT_URI", "").strip(),
        verifier_store=VerifierStore(storage),
        state_manager=state_manager,
        complete_login_fn=complete_login_fn,
        scopes=scopes,
        cors_origins=frontend_origins,
    )

    LOGGER.info(
        "watchlog auth %s mode=%s storage=%s",
        APP_VERSION,
        AUTH_MODE,
        storage_backend(),
    )
    app = Starlette(routes=[*login_flow.routes(), *health_routes()])
    app.state.login_flow = login_flow
    return app


def main() -> None:
    import uvicorn

    host = os.getenv("WATCHLOG_HOST", "127.0.0.1")
    port = int(os.getenv("WATCHLOG_PORT", "8000"))
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
