# storefront/data/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.utils.settings import DATABASE_URL

engine_kwargs = {}
if DATABASE_URL.startswith("sqlite"):
    #in-memory sqlite: one connection shared across threads
    engine_kwargs = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }

engine = create_engine(DATABASE_URL, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency, one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
