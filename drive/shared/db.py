import logging
from contextlib import contextmanager
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from drive.shared.config import settings
from drive.shared.errors import StoreError

logger = logging.getLogger(__name__)

DB_URL = settings.DATABASE_URL
_SQLITE = DB_URL.startswith("sqlite")

# Local SQLite DB under ./storage/ (directory created if missing)
if _SQLITE and DB_URL.startswith("sqlite:///") and ":memory:" not in DB_URL:
    Path(DB_URL[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(DB_URL, connect_args={"check_same_thread": False} if _SQLITE else {})
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

if _SQLITE:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    @event.listens_for(engine, "connect")
    def _sqlite_fk_on(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

class Base(DeclarativeBase):
    pass

# FastAPI dep
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    # import models so they register with Base.metadata
    from drive.auth import models as auth_models  # noqa: F401
    from drive.files import models as files_models  # noqa: F401
    Base.metadata.create_all(bind=engine)

@contextmanager
def store_errors(db: Session):
    """Roll back and re-raise driver/ORM failures as StoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("metadata store error")
        raise StoreError() from e
