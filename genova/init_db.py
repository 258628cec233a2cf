# genova/init_db.py
"""
Create every table on the configured database.

On PostgreSQL this also installs ``btree_gist`` and the per-tutor
no-overlap exclusion constraint (see ``models.session``).

    python -m genova.init_db
"""

import logging

from sqlalchemy.engine import Engine

from . import models  # noqa: F401 - registers tables on Base.metadata
from .core.config import settings
from .database import Base, engine

logger = logging.getLogger(__name__)


def create_tables(bind: Engine = engine) -> None:
    Base.metadata.create_all(bind=bind)
    logger.info(f"Created {len(Base.metadata.tables)} tables on {bind.dialect.name}")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    create_tables()
