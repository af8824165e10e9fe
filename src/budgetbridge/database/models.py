"""SQLAlchemy models for budgetbridge database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    JSON,
    event,
)
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

Base = declarative_base()

# Crypto balances need more than cents
MONEY = Numeric(28, 8)


class Account(Base):
    """Account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    name_key = Column(String, unique=True, nullable=False)
    currency = Column(String(10), nullable=False)
    balance = Column(MONEY, default=0, nullable=False)
    category = Column(String, default="asset", nullable=False)
    type = Column(String, default="checking", nullable=False)
    provider_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_activity = Column(DateTime, nullable=True)
    include_in_net_worth = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Category(Base):
    """Category model. Names are unique ignoring case."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    name_key = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Tag(Base):
    """Tag model. Names are unique ignoring case."""

    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    name_key = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(MONEY, nullable=False)
    transaction_currency = Column(String(10), nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, default="Uncategorized", nullable=False)
    tags = Column(JSON, default=list, nullable=False)
    original_import_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


def create_async_session_factory(database_url: str) -> tuple[AsyncEngine, async_sessionmaker]:
    """Create an async engine and session factory.

    Tables are created by ``SQLAlchemyDatabase.initialize_schema``, which
    has to run inside the event loop.
    """
    if make_url(database_url).get_backend_name() != "sqlite":
        engine = create_async_engine(database_url, echo=False)
        return engine, async_sessionmaker(engine, expire_on_commit=False)

    # One connection per session; pooled aiosqlite connections outlive the
    # event loop they were opened in.
    engine = create_async_engine(
        database_url, echo=False, poolclass=NullPool, connect_args={"timeout": 30}
    )

    # Take the write lock when a transaction begins so concurrent
    # writers wait on the busy timeout instead of failing to upgrade.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine, async_sessionmaker(engine, expire_on_commit=False)
