from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from .core.config import settings

engine = create_engine(
    settings.database_url,
    # Busy timeout makes lock waits block instead of failing immediately
    connect_args={"check_same_thread": False, "timeout": 30} if "sqlite" in settings.database_url else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """Create all database tables"""
    # Models must be imported so their tables register on Base.metadata
    from .models import activity, lock, resource, user  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def insert_or_ignore(db: Session, table, values: dict) -> None:
    """Insert a row unless one with the same primary/unique key exists."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing()
    else:
        stmt = table.insert().prefix_with("IGNORE").values(**values)
    db.execute(stmt)
