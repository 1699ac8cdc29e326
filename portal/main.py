import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from sqlalchemy.ext.asyncio import AsyncEngine

from portal.api.errors import register_exception_handlers
from portal.api.router import router as api_router
from portal.config import Settings
from portal.config import settings as default_settings
from portal.database import build_engine, build_sessionmaker
from portal.services.swiftpay import SwiftPayClient

logger = logging.getLogger("portal.api")

CORS_HEADERS = {
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Admin-Token, X-Request-ID",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def create_app(
    settings: Settings | None = None,
    *,
    engine: AsyncEngine | None = None,
    swiftpay: SwiftPayClient | None = None,
) -> FastAPI:
    """Build the API with its collaborators.

    The database engine and the SwiftPay client are constructed here (or
    passed in) and stored on ``app.state``; routes reach them through FastAPI
    dependencies.
    """

    settings = settings or default_settings
    engine = engine or build_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await engine.dispose()

    app = FastAPI(title="Job Portal Payments API", lifespan=lifespan)

    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    app.state.swiftpay = swiftpay or SwiftPayClient.from_settings(settings)

    cors_headers = {"Access-Control-Allow-Origin": settings.cors_origins, **CORS_HEADERS}

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Attach a request id to every response and log a compact access line.

        - If the caller provides X-Request-ID, we reuse it.
        - Otherwise we generate a UUID4.
        """

        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "access request_id=%s method=%s path=%s status=%s duration_ms=%.2f",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        # Browsers and the provider both call these endpoints; every OPTIONS is answered directly.
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=cors_headers)

        response = await call_next(request)
        response.headers.update(cors_headers)
        return response

    register_exception_handlers(app, cors_headers=cors_headers)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
