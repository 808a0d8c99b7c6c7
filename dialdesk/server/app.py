"""FastAPI app creation, server settings, the shared DialDesk instance, and auth dependencies."""

import hmac
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from ..app import DialDesk
from ..errors import NoValidMessages, PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class ServerSettings:
    """
    Server-level settings read from the environment.

    Attributes:
        config_path: DIALDESK_CONFIG, the YAML file DialDesk loads lazily
        api_key: DIALDESK_API_KEY; None means dev mode (no client auth)
        service_key: DIALDESK_SERVICE_KEY; None disables the internal routes
        allowed_origins: DIALDESK_ALLOWED_ORIGINS, comma separated
    """
    config_path: str = "config.yaml"
    api_key: Optional[str] = None
    service_key: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "ServerSettings":
        origins = os.getenv("DIALDESK_ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173")
        return cls(
            config_path=os.getenv("DIALDESK_CONFIG", "config.yaml"),
            api_key=os.getenv("DIALDESK_API_KEY") or None,
            service_key=os.getenv("DIALDESK_SERVICE_KEY") or None,
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


settings = ServerSettings.from_env()

_app: Optional[DialDesk] = None


def _try_load_app() -> None:
    global _app
    path = settings.config_path
    if not os.path.exists(path):
        logger.warning(f"Config not found: {path}")
        return
    try:
        _app = DialDesk(path)
        logger.info(f"DialDesk loaded from {path}")
    except Exception as e:
        logger.warning(f"Failed to load config {path}: {e}")
        _app = None


def require_app() -> DialDesk:
    """Return the DialDesk instance, loading it on first use; 503 if unavailable."""
    if _app is None:
        _try_load_app()
    if _app is None:
        raise HTTPException(503, f"Not configured. Provide a config file at {settings.config_path}.")
    return _app


def set_app(new_app: Optional[DialDesk]) -> None:
    global _app
    _app = new_app


def get_app_instance() -> Optional[DialDesk]:
    return _app


def _key_matches(given: Optional[str], expected: str) -> bool:
    return bool(given) and hmac.compare_digest(given.encode(), expected.encode())


def verify_service_key(request: Request) -> None:
    """X-Service-Key check for routes called by internal collaborators."""
    if settings.service_key is None:
        raise HTTPException(
            500,
            "DIALDESK_SERVICE_KEY is not configured. "
            "Set it to enable internal endpoints.",
        )
    if not _key_matches(request.headers.get("x-service-key"), settings.service_key):
        raise HTTPException(403, "Invalid service key")


_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    request: Request,
    api_key_header_value: Optional[str] = Security(_api_key_header),
) -> Optional[str]:
    """Accept `X-API-Key: <key>` or `Authorization: Bearer <key>`.

    When DIALDESK_API_KEY is not set, all requests are allowed (dev mode).
    """
    expected = settings.api_key
    if expected is None:
        return None
    if _key_matches(api_key_header_value, expected):
        return api_key_header_value
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer ") and _key_matches(auth_header[7:], expected):
        return auth_header[7:]
    raise HTTPException(401, "Invalid or missing API key")


@asynccontextmanager
async def _lifespan(_api: FastAPI):
    yield
    if _app is not None:
        await _app.shutdown()


def _create_api() -> FastAPI:
    _api = FastAPI(title="DialDesk", version="0.1.0", lifespan=_lifespan)
    _api.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @_api.exception_handler(NoValidMessages)
    async def _invalid_messages(request: Request, exc: NoValidMessages):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @_api.exception_handler(PersistenceError)
    async def _store_unavailable(request: Request, exc: PersistenceError):
        logger.error(f"[Store] {request.url.path} failed: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Issue store unavailable"})

    if settings.api_key is None:
        logger.warning(
            "DIALDESK_API_KEY is not set. API endpoints are unauthenticated."
        )

    from .routes import register_routes
    register_routes(_api)
    return _api


api = _create_api()
