"""FitLog API Server - Entry point.

Runs the weight and nutrition tracking API over HTTP. Route handlers only
translate between HTTP and the services; all rules live in the shell stores.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .config import AppConfig
from .core.errors import FitLogError, InvalidInput, Unauthenticated
from .core.models import Session, User
from .shell.credentials import CredentialStore
from .shell.record_store import RecordStore
from .shell.services import DIET_LOG, NUTRITION_LOG, EntryLogService, WeightService
from .shell.sessions import SessionAuthority
from .shell.storage import FirestoreBackend, FirestoreConfig, MemoryBackend, StorageBackend


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SESSION_COOKIE = "fitlog_session"


@dataclass
class Services:
    """Everything the route handlers need, built once per app."""

    config: AppConfig
    credentials: CredentialStore
    sessions: SessionAuthority
    weight: WeightService
    nutrition: EntryLogService
    diet: EntryLogService


def build_backend(config: AppConfig) -> StorageBackend:
    """Create the storage backend named in the config."""
    if config.storage == "firestore":
        return FirestoreBackend(
            FirestoreConfig(
                project_id=config.firestore_project,
                database=config.firestore_database,
            )
        )
    if config.storage == "memory":
        return MemoryBackend()
    raise ValueError(f"Unknown storage backend: {config.storage}")


def build_services(config: AppConfig, backend: StorageBackend | None = None) -> Services:
    """Wire stores and services on top of one backend."""
    backend = backend or build_backend(config)
    records = RecordStore(backend)
    return Services(
        config=config,
        credentials=CredentialStore(backend, records, bcrypt_rounds=config.bcrypt_rounds),
        sessions=SessionAuthority(ttl=timedelta(hours=config.session_ttl_hours)),
        weight=WeightService(records),
        nutrition=EntryLogService(records, NUTRITION_LOG),
        diet=EntryLogService(records, DIET_LOG),
    )


# ==================== Request Helpers ====================


def _services(request: Request) -> Services:
    return request.app.state.services


def _get_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.replace("Bearer ", "", 1).strip() or None
    return request.cookies.get(SESSION_COOKIE)


def _require_session(request: Request) -> Session:
    """Resolve the caller's session. Runs before any body parsing."""
    return _services(request).sessions.resolve(_get_token(request))


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise InvalidInput("Invalid JSON body") from e


async def _json_object(request: Request) -> dict:
    body = await _json_body(request)
    if not isinstance(body, dict):
        raise InvalidInput("Invalid data format")
    return body


def _user_public(user: User | Session) -> dict:
    if isinstance(user, Session):
        return {"id": user.user_id, "username": user.username}
    return {"id": user.id, "username": user.username}


async def fitlog_error_handler(request: Request, exc: FitLogError) -> JSONResponse:
    """Render any FitLogError as {"error": message}."""
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


# ==================== Auth Routes ====================


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "healthy", "service": "fitlog-api"})


async def register(request: Request) -> JSONResponse:
    """Register a new user."""
    body = await _json_object(request)
    user = await run_in_threadpool(
        _services(request).credentials.register,
        body.get("username"),
        body.get("password"),
        body.get("email"),
    )
    return JSONResponse(
        {"message": "User registered successfully", "user": _user_public(user)},
        status_code=201,
    )


async def login(request: Request) -> JSONResponse:
    """Verify credentials and start a session (cookie and token)."""
    services = _services(request)
    body = await _json_object(request)
    user = await run_in_threadpool(
        services.credentials.verify, body.get("username"), body.get("password")
    )
    token = services.sessions.create_session(user.id, user.username)

    response = JSONResponse(
        {"message": "Login successful", "user": _user_public(user), "token": token}
    )
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=int(services.config.session_ttl_hours * 3600),
        httponly=True,
        secure=services.config.cookie_secure,
        samesite="lax",
    )
    return response


async def logout(request: Request) -> JSONResponse:
    """End the caller's session. Succeeds even if there was none."""
    _services(request).sessions.destroy(_get_token(request))
    response = JSONResponse({"message": "Logout successful"})
    response.delete_cookie(SESSION_COOKIE)
    return response


async def auth_status(request: Request) -> JSONResponse:
    """Report whether the caller holds a live session."""
    try:
        session = _require_session(request)
    except Unauthenticated:
        return JSONResponse({"authenticated": False})
    return JSONResponse({"authenticated": True, "user": _user_public(session)})


# ==================== Weight Routes ====================


async def list_weight(request: Request) -> JSONResponse:
    session = _require_session(request)
    entries = await run_in_threadpool(_services(request).weight.list_entries, session.user_id)
    return JSONResponse([e.to_json() for e in entries])


async def add_weight(request: Request) -> JSONResponse:
    session = _require_session(request)
    body = await _json_object(request)
    entry = await run_in_threadpool(
        _services(request).weight.add, session.user_id, body.get("date"), body.get("weight")
    )
    return JSONResponse(entry.to_json(), status_code=201)


async def delete_weight(request: Request) -> JSONResponse:
    session = _require_session(request)
    await run_in_threadpool(
        _services(request).weight.remove, session.user_id, request.path_params["entry_id"]
    )
    return JSONResponse({"message": "Entry deleted successfully"})


# ==================== Nutrition Routes ====================


async def list_nutrition(request: Request) -> JSONResponse:
    session = _require_session(request)
    entries = await run_in_threadpool(_services(request).nutrition.list_entries, session.user_id)
    return JSONResponse([e.to_json() for e in entries])


async def replace_nutrition(request: Request) -> JSONResponse:
    session = _require_session(request)
    body = await _json_body(request)
    entries = await run_in_threadpool(
        _services(request).nutrition.replace_all, session.user_id, body
    )
    return JSONResponse({
        "success": True,
        "message": "Entries saved successfully",
        "count": len(entries),
    })


async def add_nutrition(request: Request) -> JSONResponse:
    session = _require_session(request)
    body = await _json_object(request)
    entry = await run_in_threadpool(_services(request).nutrition.add, session.user_id, body)
    return JSONResponse(
        {"success": True, "message": "Entry added successfully", "entry": entry.to_json()},
        status_code=201,
    )


async def delete_nutrition(request: Request) -> JSONResponse:
    session = _require_session(request)
    await run_in_threadpool(
        _services(request).nutrition.remove, session.user_id, request.path_params["entry_id"]
    )
    return JSONResponse({"success": True, "message": "Entry deleted successfully"})


async def get_nutrition_settings(request: Request) -> JSONResponse:
    session = _require_session(request)
    settings = await run_in_threadpool(_services(request).nutrition.get_settings, session.user_id)
    return JSONResponse(settings.to_json())


async def save_nutrition_settings(request: Request) -> JSONResponse:
    session = _require_session(request)
    body = await _json_body(request)
    settings = await run_in_threadpool(
        _services(request).nutrition.save_settings, session.user_id, body
    )
    return JSONResponse({
        "success": True,
        "message": "Settings saved successfully",
        "settings": settings.to_json(),
    })


# ==================== Legacy Diet Routes ====================


async def list_diet(request: Request) -> JSONResponse:
    session = _require_session(request)
    entries = await run_in_threadpool(_services(request).diet.list_entries, session.user_id)
    return JSONResponse([e.to_json() for e in entries])


async def add_diet(request: Request) -> JSONResponse:
    session = _require_session(request)
    body = await _json_object(request)
    entry = await run_in_threadpool(_services(request).diet.add, session.user_id, body)
    return JSONResponse(entry.to_json(), status_code=201)


async def delete_diet(request: Request) -> JSONResponse:
    session = _require_session(request)
    await run_in_threadpool(
        _services(request).diet.remove, session.user_id, request.path_params["entry_id"]
    )
    return JSONResponse({"message": "Entry deleted successfully"})


async def get_diet_settings(request: Request) -> JSONResponse:
    session = _require_session(request)
    settings = await run_in_threadpool(_services(request).diet.get_settings, session.user_id)
    return JSONResponse(settings.to_json())


async def save_diet_settings(request: Request) -> JSONResponse:
    session = _require_session(request)
    body = await _json_body(request)
    settings = await run_in_threadpool(_services(request).diet.save_settings, session.user_id, body)
    return JSONResponse(settings.to_json())


# ==================== Create ASGI App ====================


def create_app(config: AppConfig | None = None, backend: StorageBackend | None = None) -> Starlette:
    """Create the Starlette application.

    Args:
        config: Runtime configuration (defaults to environment)
        backend: Storage backend override, mainly for tests

    Returns:
        Configured Starlette app
    """
    config = config or AppConfig.from_env()

    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/api/auth/register", register, methods=["POST"]),
        Route("/api/auth/login", login, methods=["POST"]),
        Route("/api/auth/logout", logout, methods=["POST"]),
        Route("/api/auth/status", auth_status, methods=["GET"]),
        Route("/api/entries", list_weight, methods=["GET"]),
        Route("/api/entries", add_weight, methods=["POST"]),
        Route("/api/entries/{entry_id:int}", delete_weight, methods=["DELETE"]),
        Route("/api/nutrition/entries", list_nutrition, methods=["GET"]),
        Route("/api/nutrition/entries", replace_nutrition, methods=["POST"]),
        Route("/api/nutrition/entry", add_nutrition, methods=["POST"]),
        Route("/api/nutrition/entry/{entry_id:int}", delete_nutrition, methods=["DELETE"]),
        Route("/api/nutrition/settings", get_nutrition_settings, methods=["GET"]),
        Route("/api/nutrition/settings", save_nutrition_settings, methods=["POST"]),
        Route("/api/diet/settings", get_diet_settings, methods=["GET"]),
        Route("/api/diet/settings", save_diet_settings, methods=["POST"]),
        Route("/api/diet", list_diet, methods=["GET"]),
        Route("/api/diet", add_diet, methods=["POST"]),
        Route("/api/diet/{entry_id:int}", delete_diet, methods=["DELETE"]),
    ]

    app = Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=config.cors_origins,
                allow_credentials=True,
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["*"],
            ),
        ],
        exception_handlers={FitLogError: fitlog_error_handler},
    )
    app.state.services = build_services(config, backend)
    return app


# Create app at module level for uvicorn
app = create_app()


def main() -> None:
    """Run the server."""
    config = app.state.services.config
    logger.info("Starting FitLog server on %s:%d (storage: %s)", config.host, config.port, config.storage)
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
