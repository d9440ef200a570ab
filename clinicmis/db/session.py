# clinicmis/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from clinicmis.core.config import settings


def make_engine(db_uri: str, *, echo: bool = False) -> Engine:
    if db_uri.startswith("sqlite"):
        return create_engine(
            db_uri,
            echo=echo,
            connect_args={"check_same_thread": False},
            future=True,
        )
    return create_engine(
        db_uri,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
        future=True,
    )


engine: Engine = make_engine(settings.SQLALCHEMY_DATABASE_URI, echo=settings.DB_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

