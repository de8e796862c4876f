from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from canteen.models import AppNotification, Employee, NotificationType
from canteen.services.audit_service import log_audit

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    employee_id: int,
    message: str,
    notification_type: NotificationType = NotificationType.SYSTEM,
) -> AppNotification:
    notification = AppNotification(
        employee_id=employee_id,
        message=message,
        type=notification_type,
        is_read=False,
    )
    db.add(notification)
    db.flush()
    return notification


def list_for_employee(db: Session, *, employee_id: int, limit: int | None = None) -> list[AppNotification]:
    stmt = (
        select(AppNotification)
        .where(AppNotification.employee_id == employee_id)
        .order_by(AppNotification.created_at.desc(), AppNotification.id.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    return db.execute(stmt).scalars().all()


def unread_count(db: Session, *, employee_id: int) -> int:
    return db.execute(
        select(func.count(AppNotification.id)).where(
            AppNotification.employee_id == employee_id,
            AppNotification.is_read.is_(False),
        )
    ).scalar_one()


def mark_notification_read(db: Session, *, notification_id: int, employee_id: int) -> bool:
    notification = db.execute(
        select(AppNotification).where(
            AppNotification.id == notification_id,
            AppNotification.employee_id == employee_id,
        )
    ).scalar_one_or_none()
    if not notification:
        return False
    notification.is_read = True
    db.flush()
    return True


def mark_all_read(db: Session, *, employee_id: int) -> int:
    result = db.execute(
        update(AppNotification)
        .where(
            AppNotification.employee_id == employee_id,
            AppNotification.is_read.is_(False),
        )
        .values(is_read=True)
    )
    db.flush()
    return result.rowcount or 0


def send_coupon_email_stub(db: Session, *, employee: Employee, count: int, coupon_type: str) -> None:
    payload = {
        'employee_id': employee.id,
        'email': employee.email,
        'count': count,
        'coupon_type': coupon_type,
        'status': 'STUB_SENT' if employee.email else 'NO_ADDRESS',
    }
    logger.info('Coupon email for employee %s: %s x %s', employee.id, count, coupon_type)
    log_audit(
        db,
        actor=None,
        action='COUPON_EMAIL_STUB_SENT',
        ip=None,
        metadata=payload,
    )


def dispatch_coupon_email(db: Session, *, employee: Employee, count: int, coupon_type: str) -> None:
    """Hands the issuance off to the mail sink; the ledger does not care whether it lands."""
    try:
        send_coupon_email_stub(db, employee=employee, count=count, coupon_type=coupon_type)
    except Exception:
        logger.warning('Coupon email dispatch failed for employee %s', employee.id, exc_info=True)
