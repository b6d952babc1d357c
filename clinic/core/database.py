from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator
import redis
from .config import settings


def _engine_kwargs(url: str) -> dict:
    """SQLite (tests) needs cross-thread access and no pool sizing."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
    }


engine = create_engine(
    settings.get_database_url,
    **_engine_kwargs(settings.get_database_url)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Redis setup - mock for testing
if settings.TESTING:
    # Use a simple dict-based mock for Redis in tests
    class RedisMock:
        def __init__(self):
            self.data = {}

        def setex(self, key, time, value):
            self.data[key] = str(value)
            return True

        def get(self, key):
            return self.data.get(key)

        def delete(self, key):
            if key in self.data:
                del self.data[key]
            return 1

        def incr(self, key):
            try:
                self.data[key] = str(int(self.data.get(key, "0")) + 1)
            except ValueError:
                self.data[key] = "1"
            return int(self.data[key])

        def flushall(self):
            self.data.clear()
            return True

    redis_client = RedisMock()
else:
    # Real Redis client for production
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client

def lock_for_write(db: Session) -> None:
    """Hold the SQLite write lock until the current transaction ends.

    pysqlite opens no transaction before the first INSERT, so a read-then-write
    sequence is not isolated from other connections. ``BEGIN IMMEDIATE`` takes the
    write lock up front; a second caller waits on the busy timeout and then sees
    the first caller's committed rows. Other backends lock rows with
    ``with_for_update`` and are left alone.
    """
    if db.get_bind().dialect.name != "sqlite":
        return

    dbapi_connection = db.connection().connection.dbapi_connection
    # Earlier DML in this transaction already holds the lock
    if not dbapi_connection.in_transaction:
        dbapi_connection.execute("BEGIN IMMEDIATE")

# Database initialization
def init_db():
    """Initialize database tables."""
    # Register every mapped class on Base.metadata before creating tables
    from ..models import user, role, patient, doctor, consultation  # noqa: F401

    Base.metadata.create_all(bind=engine)
