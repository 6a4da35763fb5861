from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine


@lru_cache(maxsize=None)
def get_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args)


def get_session(database_url: str) -> Session:
    return Session(get_engine(database_url))


def create_tables(database_url: str) -> None:
    # registers the order_request table on SQLModel.metadata
    from pierre_chat.models import order  # noqa: F401

    SQLModel.metadata.create_all(get_engine(database_url))
