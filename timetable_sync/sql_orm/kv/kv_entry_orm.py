import datetime
import json
from typing import Any, Dict, Optional

import sqlalchemy as sa
import sqlalchemy.exc as sa_exception
from sqlalchemy.orm import Mapped, mapped_column, scoped_session

from timetable_sync.sql_orm.connection.base import Base
from timetable_sync.sql_orm.connection.sqlalchemy_engine import get_engine, get_session_factory
from timetable_sync.utils.logging_config import get_api_logger, log_store_operation
from timetable_sync.utils.time_utils import utc_now

logger = get_api_logger()


class KvEntryOrm(Base):
    __tablename__ = 'kv_entries'

    key: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    value: Mapped[str] = mapped_column(sa.Text, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )


class KvStore:
    """
    Key-value store with get/put semantics over a single SQL table.
    Backs the schedules API the way a hosted KV namespace would.
    """

    def __init__(self, session_factory: scoped_session):
        self.session_factory = session_factory

    def get_text(self, key: str) -> Optional[str]:
        session = self.session_factory()
        try:
            entry = session.get(KvEntryOrm, key)
            return entry.value if entry is not None else None
        finally:
            session.close()

    def get_json(self, key: str) -> Any:
        raw = self.get_text(key)
        return json.loads(raw) if raw is not None else None

    def put_many(self, values: Dict[str, str]) -> None:
        """
        Write several keys in one transaction; either all land or none.

        Raises:
            sqlalchemy.exc.SQLAlchemyError: on any database failure (rolled back)
        """
        session = self.session_factory()
        try:
            for key, value in values.items():
                session.merge(KvEntryOrm(key=key, value=value))
            session.commit()
        except sa_exception.SQLAlchemyError as e:
            session.rollback()
            log_store_operation(logger, "PUT", "kv", success=False, details=", ".join(values), error=e)
            raise
        finally:
            session.close()


def initialize_kv_store(database_url: str) -> KvStore:
    """Create the engine and the kv_entries table, returning a ready store."""
    engine = get_engine(database_url)
    Base.metadata.create_all(engine)
    return KvStore(get_session_factory(engine))
