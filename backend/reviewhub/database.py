"""Database setup, session management and conflict-safe upserts."""
import logging
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.dialects import postgresql, sqlite

from .config import settings, DATA_DIR

logger = logging.getLogger(__name__)

# Ensure data directory exists
DATA_DIR.mkdir(exist_ok=True)

DATABASE_URL = settings.database_url

if DATABASE_URL == "sqlite:///data/reviewhub.db":
    # Resolve the default relative path against the data directory
    DATABASE_URL = f"sqlite:///{DATA_DIR / 'reviewhub.db'}"

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,  # Needed for SQLite with FastAPI
    echo=False,  # Set to True for SQL debugging
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """Dependency for getting database sessions."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database tables and seed reference data."""
    # Import all models to ensure they're registered with Base
    from .models import program, criterion, review, reviewer

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at {DATABASE_URL}")

    if settings.seed_default_templates:
        from .services.catalog import seed_default_templates
        db = SessionLocal()
        try:
            created = seed_default_templates(db)
            if created:
                logger.info(f"Seeded {created} default criteria templates")
        finally:
            db.close()


def upsert(
    db: Session,
    model,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Optional[Iterable[str]] = None,
) -> bool:
    """
    Insert a row, resolving a unique-key conflict in the datastore.

    With update_columns the existing row is overwritten (last writer wins);
    without, the insert is ignored. Returns True when a new row was inserted
    or an existing one updated, False when a conflicting row was left as is.
    """
    conflict_columns = list(conflict_columns)
    update_columns = list(update_columns) if update_columns else []
    dialect = db.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(model.__table__).values(**values)
        if update_columns:
            stmt = stmt.on_conflict_do_update(
                index_elements=conflict_columns,
                set_={col: stmt.excluded[col] for col in update_columns},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=conflict_columns)
        result = db.execute(stmt)
        return result.rowcount > 0

    # Generic path for other dialects
    key = {col: values[col] for col in conflict_columns}
    existing = db.execute(select(model).filter_by(**key)).scalar_one_or_none()
    if existing is None:
        db.add(model(**values))
        db.flush()
        return True
    if not update_columns:
        return False
    for col in update_columns:
        setattr(existing, col, values[col])
    db.flush()
    return True
