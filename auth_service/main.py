# auth_service/main.py
import time
import uuid
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from auth_service import __version__
from auth_service.api.deps import Principal, get_optional_principal
from auth_service.api.transport import CookieTransport
from auth_service.api.v1.router import api_router
from auth_service.core.config import Settings, get_settings
from auth_service.core.errors import AccessTokenError, AppError, InternalError, RefreshTokenError
from auth_service.core.logging import get_logger, set_request_id, set_user_id, setup_logging
from auth_service.db.bootstrap import create_schema, run_migrations
from auth_service.db.session import make_engine, make_session_factory
from auth_service.services.container import Services, build_services

log = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
    engine: Optional[Engine] = None,
) -> FastAPI:
    settings = settings or get_settings()
    settings.check_production()
    setup_logging(settings)

    api = FastAPI(
        title="Budget Tracker - Auth Service",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        swagger_ui_parameters={"displayRequestDuration": True, "persistAuthorization": True},
    )
    api.state.settings = settings
    api.state.engine = engine or make_engine(settings.DATABASE_URL)
    api.state.session_factory = make_session_factory(api.state.engine)
    api.state.services = services or build_services(settings)

    api.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @api.middleware("http")
    async def request_context(request: Request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        set_request_id(rid)
        set_user_id(None)
        started = time.perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = rid
        log.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response

    # /metrics (Prometheus)
    Instrumentator().instrument(api).expose(api, include_in_schema=False, should_gzip=True)

    api.include_router(api_router)

    @api.get("/", tags=["health"])
    def root(principal: Optional[Principal] = Depends(get_optional_principal)):
        return {
            "message": "Budget Tracker auth service",
            "version": __version__,
            "status": "ok",
            "authenticated": principal is not None,
        }

    @api.on_event("startup")
    def startup():
        if settings.RUN_MIGRATIONS_ON_STARTUP:
            run_migrations(settings.DATABASE_URL)
        else:
            create_schema(api.state.engine)
        log.info("startup_complete", env=settings.APP_ENV, providers=api.state.services.providers.enabled())

    @api.exception_handler(AppError)
    def handle_app_error(request: Request, exc: AppError):
        response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
        if isinstance(exc, AccessTokenError):
            response.headers["WWW-Authenticate"] = "Bearer"
        if isinstance(exc, RefreshTokenError):
            # the client must drop whatever it holds and sign in again
            CookieTransport(settings).clear(response)
        return response

    @api.exception_handler(RequestValidationError)
    def handle_validation_error(request: Request, exc: RequestValidationError):
        details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"code": "VALIDATION_ERROR", "message": "Invalid request.", "details": {"errors": details}},
        )

    @api.exception_handler(StarletteHTTPException)
    def handle_http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": f"HTTP_{exc.status_code}", "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @api.exception_handler(IntegrityError)
    def handle_integrity_error(request: Request, exc: IntegrityError):
        log.warning("integrity_error", path=request.url.path, error=type(getattr(exc, "orig", exc)).__name__)
        return JSONResponse(status_code=409, content={"code": "UNIQUE_VIOLATION", "message": "Duplicate record."})

    @api.exception_handler(Exception)
    def handle_unexpected(request: Request, exc: Exception):
        log.exception("unhandled_error", path=request.url.path)
        error = InternalError()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    return api
