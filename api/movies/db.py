import logging
import time
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .models import Base
from .settings import settings

logger = logging.getLogger(__name__)

engine: Engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

def wait_for_db(max_seconds: int = 60) -> None:
    """
    Postgres can take a few seconds to become ready even after the container is "Up".
    This retries until it's reachable or times out.
    """
    start = time.time()
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return
        except OperationalError:
            if time.time() - start > max_seconds:
                raise
            logger.warning("Database not reachable yet, retrying")
            time.sleep(2)

def run_migrations() -> None:
    wait_for_db()
    Base.metadata.create_all(engine)

def get_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
