from __future__ import annotations

import importlib

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .constants import APP_VERSION, AUTH_MODE


def load_completion_handler(path: str):
    """Resolve ``package.module:function`` to the login completion callable.

    The callable is awaited with ``code``, ``code_verifier`` and
    ``redirect_uri`` keyword arguments and returns a JSON-serialisable dict.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise RuntimeError(f"Invalid login completion handler path: {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as error:
        raise RuntimeError(f"Cannot import login completion handler module {module_name!r}.") from error

    handler = getattr(module, attribute, None)
    if not callable(handler):
        raise RuntimeError(f"Login completion handler {path!r} is not callable.")
    return handler


async def health_route(request: Request) -> Response:
    del request
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "auth_mode": AUTH_MODE,
        }
    )


def health_routes() -> list[Route]:
    return [Route("/health", health_route, methods=["GET"])]
