"""
Create all tables directly, for local development without Alembic.
Run: python -m lightfriend.db.init_db
"""
import logging

from lightfriend.db.session import engine
from lightfriend.db.base import Base
import lightfriend.db.models  # noqa: F401  registers every model on Base.metadata

logger = logging.getLogger(__name__)


def init_db():
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
