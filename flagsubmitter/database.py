from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def setup_db_conn(url: str, **engine_kwargs) -> tuple[Engine, sessionmaker]:
    engine = create_engine(url, **engine_kwargs)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return engine, SessionLocal


@contextmanager
def get_db_context(SessionLocal: sessionmaker) -> Generator[Session, None, None]:
    """
    Provides a session that is committed when the block exits cleanly and rolled
    back if it raises, so every block is a single transaction.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()


def create_tables(engine: Engine):
    Base.metadata.create_all(bind=engine)


def check_connection(engine: Engine):
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
