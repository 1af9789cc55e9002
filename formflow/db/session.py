"""Engine and session factory.

Both are created lazily so importing the models never needs a database
driver.
"""

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from formflow.core.config import get_settings


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
    )


@lru_cache
def get_session_factory() -> sessionmaker:
    return create_session_factory(get_engine())


def create_session_factory(engine: Engine) -> sessionmaker:
    # Results are handed back after commit, so attributes must stay loaded.
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
