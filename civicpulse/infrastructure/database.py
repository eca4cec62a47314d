from sqlalchemy import create_engine, URL
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from ..core.config import settings
import logging
import os

logger = logging.getLogger(__name__)


def create_database_url() -> URL:
    """
    Create SQLAlchemy URL object from settings.DATABASE_URL.
    The password is masked before the URL is logged.
    """
    database_url_string = settings.DATABASE_URL

    if not database_url_string:
        raise ValueError("DATABASE_URL is empty or not set")

    try:
        url_obj = make_url(database_url_string)
    except Exception as e:
        logger.error(f"Failed to parse DATABASE_URL: {e}")
        # Only log first 20 chars to avoid exposing password
        logger.error(f"DATABASE_URL preview: {database_url_string[:20]}...")
        raise ValueError(f"Invalid DATABASE_URL format: {e}")

    if url_obj.drivername.startswith("sqlite"):
        logger.info(f"Connecting to database: {url_obj.drivername}:///{url_obj.database or ':memory:'}")
    else:
        sanitized = f"{url_obj.drivername}://{url_obj.username}:****@{url_obj.host}:{url_obj.port}/{url_obj.database}"
        logger.info(f"Connecting to database: {sanitized}")
    return url_obj


def get_connect_args(url: URL) -> dict:
    """Get connection arguments based on backend and host."""
    if url.drivername.startswith("sqlite"):
        # Sessions are handed across FastAPI's threadpool
        return {"check_same_thread": False}
    host = url.host or ""
    if "localhost" in host or "127.0.0.1" in host or "db" == host:
        return {}
    # Hosted Postgres (Supabase, etc.) requires SSL
    return {"sslmode": "require"}


try:
    database_url = create_database_url()
    connect_args = get_connect_args(database_url)
    engine = create_engine(database_url, connect_args=connect_args)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info(f"Database engine initialized (SSL: {'sslmode' in connect_args})")
except Exception as e:
    logger.error(f"CRITICAL: Failed to initialize database engine: {e}")
    logger.error(f"DATABASE_URL env var exists: {bool(os.getenv('DATABASE_URL'))}")
    raise

Base = declarative_base()


def get_db():
    """Get a database session for the duration of one request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
