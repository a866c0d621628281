"""Database connection and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from liftcore.config import get_settings
from liftcore.models import Base


settings = get_settings()

# Sync engine for the CLI and Celery workers
sync_engine = create_engine(
    settings.database_url_sync,
    echo=settings.debug,
    pool_pre_ping=True
)

SyncSessionLocal = sessionmaker(
    sync_engine,
    autocommit=False,
    autoflush=False
)


def init_db(engine=None):
    """Create all tables."""
    Base.metadata.create_all(bind=engine or sync_engine)
