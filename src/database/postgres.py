"""
In-process PostgresDB replacement for local development and tests.

Runs the same SQLAlchemy models and queries as src.database.postgres_real
against a private SQLite database, so the API can start without a Postgres
server. One connection is shared so the data lives as long as the instance.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from src.database import postgres_real


class PostgresDB(postgres_real.PostgresDB):
    def __init__(self, url: str = "sqlite://") -> None:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        super().__init__(engine=engine)
        # Tables are always needed in memory; nothing persists between runs.
        self.create_tables()
