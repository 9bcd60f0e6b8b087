from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import CITEXT, INET
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER primary keys.
PK = BigInteger().with_variant(Integer(), 'sqlite')
CaseInsensitiveText = CITEXT().with_variant(Text(), 'sqlite')
IPAddress = INET().with_variant(String(45), 'sqlite')
Money = Numeric(12, 2)
Liters = Numeric(10, 3)


class Base(DeclarativeBase):
    pass


class PrincipalRole(str, Enum):
    ADMIN = 'ADMIN'
    OPERATOR = 'OPERATOR'


class TimeOfDay(str, Enum):
    MORNING = 'MORNING'
    EVENING = 'EVENING'

    @property
    def label(self) -> str:
        return self.value.title()


class BulkEntryStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    COMPLETED = 'COMPLETED'


class BulkEntryTerminalPolicy(str, Enum):
    STOP = 'STOP'
    WRAP = 'WRAP'


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    username: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Customer(Base):
    __tablename__ = 'customers'

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    name: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False, unique=True)
    address: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    phone_number: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MilkType(Base):
    __tablename__ = 'milk_types'
    __table_args__ = (CheckConstraint('price_per_liter >= 0', name='milk_types_price_non_negative'),)

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    name: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False, unique=True)
    price_per_liter: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DeliveryRecord(Base):
    __tablename__ = 'delivery_records'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='delivery_records_quantity_non_negative'),
        Index('ix_delivery_records_customer_date', 'customer_id', 'delivery_date'),
    )

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    customer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('customers.id'), nullable=False)
    # Null for grocery-only records.
    milk_type_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('milk_types.id'))
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_of_day: Mapped[TimeOfDay | None] = mapped_column(SQLEnum(TimeOfDay, name='time_of_day'))
    quantity: Mapped[Decimal] = mapped_column(Liters, nullable=False, default=Decimal('0'), server_default='0')
    price_per_liter: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'), server_default='0')
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GroceryItem(Base):
    __tablename__ = 'grocery_items'

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    delivery_record_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('delivery_records.id'))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Liters, nullable=False, default=Decimal('1'), server_default='1')
    unit: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Payment(Base):
    __tablename__ = 'payments'
    __table_args__ = (
        CheckConstraint('amount > 0', name='payments_amount_positive'),
        Index('ix_payments_customer_date', 'customer_id', 'payment_date'),
    )

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    customer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('customers.id'), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str] = mapped_column(Text, nullable=False, default='Cash', server_default='Cash')
    notes: Mapped[str | None] = mapped_column(Text)
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CustomerBalance(Base):
    __tablename__ = 'customer_balances'

    customer_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('customers.id', ondelete='CASCADE'), primary_key=True
    )
    pending_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'), server_default='0')
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BulkEntryRun(Base):
    __tablename__ = 'bulk_entry_runs'

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_of_day: Mapped[TimeOfDay] = mapped_column(SQLEnum(TimeOfDay, name='time_of_day'), nullable=False)
    customer_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    # Bumped on every cursor move; forms post it back so a replayed request is rejected.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    committed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    status: Mapped[BulkEntryStatus] = mapped_column(
        SQLEnum(BulkEntryStatus, name='bulk_entry_status'),
        nullable=False,
        default=BulkEntryStatus.ACTIVE,
        server_default='ACTIVE',
    )
    terminal_policy: Mapped[BulkEntryTerminalPolicy] = mapped_column(
        SQLEnum(BulkEntryTerminalPolicy, name='bulk_entry_terminal_policy'),
        nullable=False,
        default=BulkEntryTerminalPolicy.STOP,
        server_default='STOP',
    )
    created_by_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(CaseInsensitiveText, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    ip: Mapped[str | None] = mapped_column(IPAddress)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    actor_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    customer_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('customers.id', ondelete='SET NULL'))
    ip: Mapped[str | None] = mapped_column(IPAddress)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    principal_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(IPAddress)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
