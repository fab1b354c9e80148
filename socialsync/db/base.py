from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from socialsync.config import settings

DATABASE_URL = settings.database_url  # default: sqlite:///./socialsync.db

def make_engine(url: str):
    is_sqlite = url.startswith("sqlite")
    eng = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    )
    if is_sqlite:
        # SQLite leaves ON DELETE CASCADE off unless asked per connection
        @event.listens_for(eng, "connect")
        def _fk_on(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()
    return eng

engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
