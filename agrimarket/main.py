import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from agrimarket.core.config import Settings, get_settings
from agrimarket.core.exceptions import MarketplaceException
from agrimarket.core.executors import BoundedExecutor
from agrimarket.core.logging import configure_logging
from agrimarket.db import session as db_session
from agrimarket.db.init import init_db
from agrimarket.events.broker import EventBroker
from agrimarket.api import users, produce, requests, request_orders
from agrimarket.auth.jwt import router as auth_router
from agrimarket.auth.middleware import JWTAuthenticationMiddleware
from agrimarket.auth.resolver import AuthenticationResolver
from agrimarket.services.workflow import ProduceRequestWorkflow

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    session_factory: Optional[Callable[[], Session]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or db_session.engine
    session_factory = session_factory or db_session.SessionLocal
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Initialize database
        db = session_factory()
        try:
            init_db(engine, db)
        finally:
            db.close()
        logger.info("%s started", settings.PROJECT_NAME)
        yield
        app.state.broker.shutdown()
        app.state.ledger_pool.shutdown(wait=True)
        logger.info("%s stopped", settings.PROJECT_NAME)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Backend API for the produce marketplace: buyers' produce requests and farmers' orders",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.broker = EventBroker(
        heartbeat_seconds=settings.SSE_HEARTBEAT_SECONDS,
        idle_timeout_seconds=settings.SSE_IDLE_TIMEOUT_SECONDS,
        queue_size=settings.SSE_QUEUE_SIZE,
    )
    app.state.ledger_pool = BoundedExecutor("ledger", settings.LEDGER_POOL_WORKERS, settings.LEDGER_POOL_QUEUE)
    app.state.resolver = AuthenticationResolver()
    app.state.workflow = ProduceRequestWorkflow(
        broker=app.state.broker,
        ledger_pool=app.state.ledger_pool,
        session_factory=session_factory,
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(JWTAuthenticationMiddleware, settings=settings)

    @app.exception_handler(MarketplaceException)
    async def marketplace_exception_handler(request: Request, exc: MarketplaceException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.error_code, **({"details": exc.details} if exc.details else {})},
        )

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(users.router, prefix="/users", tags=["users"])
    app.include_router(produce.router, prefix="/produce", tags=["produce"])
    app.include_router(requests.router, prefix="/requests", tags=["requests"])
    app.include_router(request_orders.router, prefix="/request-orders", tags=["request-orders"])

    @app.get("/")
    def read_root():
        return {"message": "Welcome to the produce marketplace API"}

    @app.get("/health")
    def health():
        return {"status": "ok", "event_streams": len(app.state.broker)}

    return app


app = create_app()
