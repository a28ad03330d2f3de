from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # handlers and tickers share one engine across the event loop and threadpool
        connect_args["check_same_thread"] = False
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

def init_db(engine: Engine):
    SQLModel.metadata.create_all(engine)

def get_session(engine: Engine):
    # 👇 prevent attribute expiration so simple reads after commit are safe
    return Session(engine, expire_on_commit=False)
