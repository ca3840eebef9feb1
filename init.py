import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import config
from models import Base

logger = logging.getLogger(__name__)


def setup_logging():
    """Настраивает корневой логгер по config.LOG_LEVEL"""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def get_session(database_url=None):
    """Создает и возвращает фабрику сессий SQLAlchemy и движок базы данных"""
    url = database_url or config.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connect_args)

    if url.startswith("sqlite"):
        # SAVEPOINT в pysqlite работает только при ручном управлении BEGIN
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    session_factory = sessionmaker(bind=engine)
    return session_factory, engine


def init_tables(engine):
    """Инициализирует таблицы базы данных"""
    Base.metadata.create_all(engine)
    logger.info("Database tables created")


Session, _engine = get_session()


@contextmanager
def session_scope():
    """
    Context manager for database sessions.

    Usage:
        with session_scope() as session:
            user = session.query(User).first()
    """
    session = Session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        session.close()
