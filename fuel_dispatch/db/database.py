from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def get_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # Worker threads share the engine; writers wait on the file lock
        return create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(database_url, pool_pre_ping=True, future=True)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def get_sessionmaker(database_url: str) -> sessionmaker:
    return make_sessionmaker(get_engine(database_url))
