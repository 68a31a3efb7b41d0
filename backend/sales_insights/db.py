from __future__ import annotations
from typing import Generator

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings


def _database_url() -> str:
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{settings.DATA_DIR / 'app.db'}"


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, echo=settings.SQLALCHEMY_ECHO)


engine = make_engine(_database_url())
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


class SalesFact(Base):
    """One uploaded sales row; reports read it grouped by customer and summed."""

    __tablename__ = "sales_facts"
    id = Column(Integer, primary_key=True, index=True)
    division = Column(String(16), index=True, nullable=False)
    year = Column(Integer, index=True, nullable=False)
    month = Column(Integer, index=True, nullable=False)
    type = Column(String(32), index=True, nullable=False)  # Actual, Budget, Forecast, ...
    values_type = Column(String(32), index=True, nullable=False)  # KGS / Amount
    customer_name = Column(String(255), index=True, nullable=True)
    sales_rep = Column(String(255), index=True, nullable=True)
    product_group = Column(String(255), nullable=True)
    country = Column(String(255), nullable=True)
    value = Column(Float, nullable=False, default=0.0)


class CustomerMergeRule(Base):
    __tablename__ = "customer_merge_rules"
    __table_args__ = (
        UniqueConstraint("division", "sales_rep", "merged_customer_name", name="uq_merge_rule"),
    )

    id = Column(Integer, primary_key=True, index=True)
    division = Column(String(16), index=True, nullable=False)
    sales_rep = Column(String(255), index=True, nullable=False, default="")  # "" -> division-wide
    merged_customer_name = Column(String(255), nullable=False)
    original_customers = Column(JSON, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<CustomerMergeRule id={self.id} division={self.division} merged={self.merged_customer_name}>"


class SalesRepGroup(Base):
    __tablename__ = "sales_rep_groups"
    __table_args__ = (UniqueConstraint("division", "group_name", name="uq_rep_group"),)

    id = Column(Integer, primary_key=True, index=True)
    division = Column(String(16), index=True, nullable=False)
    group_name = Column(String(255), nullable=False)
    members = Column(JSON, nullable=False)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
