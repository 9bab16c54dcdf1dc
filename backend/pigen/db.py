# backend/pigen/db.py
from sqlmodel import SQLModel, create_engine


def make_engine(database_url: str):
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, echo=False, connect_args=connect_args)


def init_db(engine):
    SQLModel.metadata.create_all(engine)
