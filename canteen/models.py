from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# SQLite only aliases INTEGER PRIMARY KEY to the rowid.
IdType = BigInteger().with_variant(Integer(), 'sqlite')


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC regardless of the backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class EmployeeRole(str, Enum):
    EMPLOYEE = 'employee'
    CONTRACTUAL_EMPLOYEE = 'contractual employee'
    ADMIN = 'admin'
    CANTEEN_MANAGER = 'canteen manager'


class EmployeeStatus(str, Enum):
    ACTIVE = 'active'
    DEACTIVATED = 'deactivated'


class CouponType(str, Enum):
    BREAKFAST = 'Breakfast'
    LUNCH_DINNER = 'Lunch/Dinner'
    SNACKS = 'Snacks'
    BEVERAGE = 'Beverage'


class CouponStatus(str, Enum):
    ISSUED = 'issued'
    REDEEMED = 'redeemed'


class NotificationType(str, Enum):
    NEW_COUPON = 'new_coupon'
    SYSTEM = 'system'


class PrincipalKind(str, Enum):
    EMPLOYEE = 'employee'
    CONTRACTOR = 'contractor'


class Employee(Base):
    __tablename__ = 'employees'

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=False)
    login_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[EmployeeRole] = mapped_column(
        SQLEnum(EmployeeRole, name='employee_role', values_callable=_values),
        nullable=False,
    )
    department: Mapped[str | None] = mapped_column(Text)
    contractor_name: Mapped[str | None] = mapped_column(Text)
    status: Mapped[EmployeeStatus] = mapped_column(
        SQLEnum(EmployeeStatus, name='employee_status', values_callable=_values),
        nullable=False,
        default=EmployeeStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_now)


class Contractor(Base):
    __tablename__ = 'contractors'

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=False)
    login_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    business_name: Mapped[str] = mapped_column(Text, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_now)


class Coupon(Base):
    __tablename__ = 'coupons'
    __table_args__ = (
        # Codes are only reserved while a coupon is still live.
        Index(
            'uq_coupons_live_redemption_code',
            'redemption_code',
            unique=True,
            sqlite_where=text("status = 'issued'"),
            postgresql_where=text("status = 'issued'"),
        ),
    )

    # Surrogate key keeps storage order stable for pool selection.
    seq: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    coupon_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    employee_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('employees.id'), index=True)
    contractor_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('contractors.id'), index=True)
    date_issued: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    status: Mapped[CouponStatus] = mapped_column(
        SQLEnum(CouponStatus, name='coupon_status', values_callable=_values),
        nullable=False,
        default=CouponStatus.ISSUED,
    )
    redeem_date: Mapped[datetime | None] = mapped_column(UTCDateTime())
    redemption_code: Mapped[str] = mapped_column(String(4), nullable=False)
    coupon_type: Mapped[CouponType] = mapped_column(
        SQLEnum(CouponType, name='coupon_type', values_callable=_values),
        nullable=False,
    )
    is_guest_coupon: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # No foreign key: guest passes outlive the employee who shared them.
    shared_by_employee_id: Mapped[int | None] = mapped_column(IdType, index=True)


class AppNotification(Base):
    __tablename__ = 'notifications'

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(IdType, ForeignKey('employees.id'), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType, name='notification_type', values_callable=_values),
        nullable=False,
    )
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_now)


class DailyMenu(Base):
    __tablename__ = 'daily_menus'

    id: Mapped[str] = mapped_column(String(10), primary_key=True)
    date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    breakfast: Mapped[str | None] = mapped_column(Text)
    lunch: Mapped[str | None] = mapped_column(Text)
    dinner: Mapped[str | None] = mapped_column(Text)
    snacks: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_now, onupdate=_now)


class WebSession(Base):
    __tablename__ = 'web_sessions'

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    session_token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    principal_kind: Mapped[PrincipalKind] = mapped_column(
        SQLEnum(PrincipalKind, name='principal_kind', values_callable=_values),
        nullable=False,
    )
    principal_id: Mapped[int] = mapped_column(IdType, nullable=False)
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_now)
    last_seen_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime())


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    attempted_login_id: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_kind: Mapped[str | None] = mapped_column(String(16))
    principal_id: Mapped[int | None] = mapped_column(IdType)
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_now)


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    actor_kind: Mapped[str | None] = mapped_column(String(16))
    actor_id: Mapped[int | None] = mapped_column(IdType)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_now)
