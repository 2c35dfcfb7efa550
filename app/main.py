import logging
import time

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.endpoints.location import router as location_router
from app.config import Settings, load_settings
from app.errors import AuthorizationError, RelayError
from app.services.dispatcher import NotificationDispatcher
from app.services.mailer import NotificationTransport, build_transport
from app.services.rate_limit import FixedWindowRateLimiter
from app.services.security import TokenStore

logger = logging.getLogger("app")

SERVICE_NAME = "location-relay"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app(settings: Settings | None = None, transport: NotificationTransport | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    if transport is None:
        transport = build_transport(settings)

    app = FastAPI(title=SERVICE_NAME)

    # everything a request handler needs lives on app.state, nothing module-global
    app.state.settings = settings
    app.state.tokens = TokenStore.from_string(settings.allowed_tokens)
    app.state.ip_limiter = FixedWindowRateLimiter(
        "ip",
        settings.ip_rate_window_seconds,
        settings.ip_rate_max,
        max_keys=settings.rate_limit_max_keys,
        sweep_interval=settings.rate_limit_sweep_seconds,
    )
    app.state.device_limiter = FixedWindowRateLimiter(
        "device",
        settings.device_rate_window_seconds,
        settings.device_rate_max,
        max_keys=settings.rate_limit_max_keys,
        sweep_interval=settings.rate_limit_sweep_seconds,
    )
    app.state.dispatcher = NotificationDispatcher(transport, map_provider=settings.map_provider)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.on_event("startup")
    async def _startup():
        logger.info(f"[BOOT] {SERVICE_NAME} starting up")
        logger.info(f"[BOOT] port={settings.port} transport={transport.kind if transport else 'none'}")
        logger.info(f"[BOOT] configured_tokens={len(app.state.tokens)}")
        logger.info(
            f"[BOOT] rate limits ip={settings.ip_rate_max}/{settings.ip_rate_window_seconds}s "
            f"device={settings.device_rate_max}/{settings.device_rate_window_seconds}s"
        )
        if not app.state.tokens:
            logger.warning("[BOOT] ALLOWED_TOKENS is empty, /send-location will reject every request")
        if transport is None:
            logger.warning("[BOOT] no email transport configured, sends will fail with 500")

        for r in app.routes:
            methods = ",".join(sorted(getattr(r, "methods", []) or []))
            logger.debug(f"[BOOT] route {methods:12s} {getattr(r, 'path', '')}")

    @app.on_event("shutdown")
    async def _shutdown():
        if transport is not None:
            await transport.aclose()

    @app.middleware("http")
    async def log_all_requests(request: Request, call_next):
        start = time.time()
        client_ip = request.client.host if request.client else "?"
        path = request.url.path

        logger.info(f"[REQ] {client_ip} {request.method} {path}")
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[ERR] {request.method} {path} exception={type(e).__name__}: {e}")
            raise

        ms = int((time.time() - start) * 1000)
        logger.info(f"[RES] {request.method} {path} -> {response.status_code} ({ms}ms)")
        return response

    @app.exception_handler(RelayError)
    async def _relay_error(request: Request, exc: RelayError):
        body = exc.body()
        if isinstance(exc, AuthorizationError) and settings.expose_auth_reason:
            body["reason"] = exc.reason
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers())

    @app.get("/")
    def index():
        return {"ok": True, "service": SERVICE_NAME, "endpoints": ["/send-location"]}

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(location_router)
    return app


app = create_app()


if __name__ == "__main__":
    s = app.state.settings
    uvicorn.run(app, host=s.host, port=s.port)
