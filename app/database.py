import logging

from sqlalchemy_utils import database_exists, create_database
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine.url import make_url

from app.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(database_url: str, echo: bool = False):
    """Create an engine; SQLite URLs share one connection across threads."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        echo=echo,  # Set SQL_ECHO=true for SQL debugging
    )


try:
    engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
except Exception as e:
    logger.error(f"[DB ERROR] Could not create engine or session: {e}")
    engine = None
    SessionLocal = None


def ensure_database_exists():
    """
    Checks if the database exists, and creates it if it does not.
    """
    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() == "sqlite":
        return
    try:
        if not database_exists(settings.DATABASE_URL):
            create_database(settings.DATABASE_URL)
            logger.info(f"Database created: {url.database}")
        else:
            logger.info(f"Database already exists: {url.database}")
    except Exception as e:
        logger.error(f"[DB ERROR] Could not check or create database: {e}")


def init_db():
    ensure_database_exists()
    # Register every mapped class before create_all
    import app.models  # noqa: F401
    if engine is None:
        logger.error("[DB ERROR] Engine is None, cannot create tables.")
        return
    Base.metadata.create_all(bind=engine)


# Dependency to get database session
def get_db():
    if SessionLocal is None:
        raise RuntimeError("[DB ERROR] SessionLocal is None, cannot get DB session.")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
