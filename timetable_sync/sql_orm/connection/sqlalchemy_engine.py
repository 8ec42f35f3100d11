from sqlalchemy import create_engine, Engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, scoped_session

from timetable_sync.utils.logging_config import get_api_logger

logger = get_api_logger()


def build_postgres_url(user: str, password: str, host: str, port: int, database: str) -> str:
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}"


def get_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    logger.info(f"Initializing SQLAlchemy engine with URL: {url.render_as_string(hide_password=True)}")
    if url.get_backend_name() == "sqlite":
        return create_engine(url)
    return create_engine(url, pool_size=20, max_overflow=0, pool_pre_ping=True)


def get_session_factory(engine: Engine) -> scoped_session:
    return scoped_session(sessionmaker(bind=engine))
