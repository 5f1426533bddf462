from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from circulation.config import DatabaseConfig, get_config


def build_engine(config: DatabaseConfig, **kwargs):
    connect_args = {"check_same_thread": False} if config.is_sqlite else {}
    engine = create_engine(config.url, echo=config.echo, connect_args=connect_args, **kwargs)

    if config.is_sqlite:
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(get_config().database)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
