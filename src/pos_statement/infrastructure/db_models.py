"""SQLAlchemy ORM models for pos_statement.

These map to existing tables created by Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import date, datetime

from sqlalchemy import BigInteger, Boolean, Computed, Date, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.pos_common.database import Base


class AccountStatementORM(Base):
    __tablename__ = "account_statements"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    statement_date: Mapped[date] = mapped_column(Date, nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    dimension: Mapped[str] = mapped_column(String(10), nullable=False)
    bank_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    window_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    seller_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[str] = mapped_column(
        String(64), Computed("COALESCE(seller_id, window_id, bank_id)", persisted=True)
    )
    total_sales: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_payouts: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    seller_commission: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    window_commission: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_paid: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_collected: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    remaining_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    commission_source: Mapped[str] = mapped_column(
        String(20), nullable=False, default="SNAPSHOT"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class MonthlyClosingBalanceORM(Base):
    __tablename__ = "monthly_closing_balances"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    closing_month: Mapped[str] = mapped_column(String(7), nullable=False)
    dimension: Mapped[str] = mapped_column(String(10), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    closing_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_sales: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_payouts: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_commission: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_paid: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_collected: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    closed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
