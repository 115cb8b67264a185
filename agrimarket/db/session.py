import logging

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from agrimarket.core.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str, **kwargs) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # SQLite connections are shared across the request thread pool
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True, **kwargs)


engine = build_engine(get_settings().DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    # session factory handed to create_app
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
