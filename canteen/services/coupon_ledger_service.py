from __future__ import annotations

import logging
import secrets
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from canteen.models import (
    Contractor,
    Coupon,
    CouponStatus,
    CouponType,
    Employee,
    EmployeeRole,
    EmployeeStatus,
    NotificationType,
)
from canteen.services.notification_service import create_notification, dispatch_coupon_email
from canteen.services.results import LedgerError, OperationResult

logger = logging.getLogger(__name__)

MONTHLY_LIMITS: dict[CouponType, int] = {
    CouponType.LUNCH_DINNER: 24,
    CouponType.BREAKFAST: 26,
}
GUEST_PASS_DAILY_LIMIT = 5
GUEST_PASS_TYPES = (CouponType.BREAKFAST, CouponType.LUNCH_DINNER)
MEAL_TYPE_ORDER = (
    CouponType.LUNCH_DINNER,
    CouponType.BREAKFAST,
    CouponType.SNACKS,
    CouponType.BEVERAGE,
)

CODE_FLOOR = 1000
CODE_SPACE = 9000


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    start = datetime(moment.year, moment.month, 1, tzinfo=timezone.utc)
    if moment.month == 12:
        end = datetime(moment.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(moment.year, moment.month + 1, 1, tzinfo=timezone.utc)
    return start, end


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(moment.date(), time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def parse_coupon_type(raw: str) -> CouponType:
    value = raw.strip()
    for coupon_type in CouponType:
        if value in {coupon_type.value, coupon_type.name}:
            return coupon_type
    raise ValueError(f'Unknown coupon type: {raw}')


def _generate_redemption_code() -> str:
    return str(CODE_FLOOR + secrets.randbelow(CODE_SPACE))


def _generate_coupon_id() -> str:
    return 'CPN-' + secrets.token_hex(4).upper()


def _live_codes(db: Session) -> set[str]:
    return set(
        db.execute(select(Coupon.redemption_code).where(Coupon.status == CouponStatus.ISSUED)).scalars().all()
    )


def _unique_coupon_ids(db: Session, count: int) -> list[str]:
    ids: set[str] = set()
    while len(ids) < count:
        candidates = {_generate_coupon_id() for _ in range(count - len(ids))} - ids
        taken = set(db.execute(select(Coupon.coupon_id).where(Coupon.coupon_id.in_(candidates))).scalars().all())
        ids.update(candidates - taken)
    return sorted(ids)


def _build_coupons(
    db: Session,
    *,
    count: int,
    coupon_type: CouponType,
    issued_at: datetime,
    employee_id: int | None = None,
    contractor_id: int | None = None,
    shared_by_employee_id: int | None = None,
) -> list[Coupon] | None:
    existing_codes = _live_codes(db)
    if len(existing_codes) + count > CODE_SPACE:
        return None

    coupons: list[Coupon] = []
    for coupon_id in _unique_coupon_ids(db, count):
        code = _generate_redemption_code()
        while code in existing_codes:
            code = _generate_redemption_code()
        existing_codes.add(code)
        coupons.append(
            Coupon(
                coupon_id=coupon_id,
                employee_id=employee_id,
                contractor_id=contractor_id,
                date_issued=issued_at,
                status=CouponStatus.ISSUED,
                redeem_date=None,
                redemption_code=code,
                coupon_type=coupon_type,
                is_guest_coupon=shared_by_employee_id is not None,
                shared_by_employee_id=shared_by_employee_id,
            )
        )
    return coupons


def _code_space_exhausted() -> OperationResult:
    return OperationResult.fail(
        LedgerError.CODE_SPACE_EXHAUSTED,
        'Not enough free redemption codes. Redeem or remove outstanding coupons first.',
    )


def issue_employee_batch(db: Session, *, employee_id: int, coupon_type: CouponType) -> OperationResult:
    employee = db.get(Employee, employee_id)
    if not employee:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Employee not found.')

    if employee.role != EmployeeRole.EMPLOYEE:
        return OperationResult.fail(
            LedgerError.ROLE_MISMATCH,
            'This function is only for permanent employees. Use the Contractors tab for contractual staff.',
        )

    limit = MONTHLY_LIMITS.get(coupon_type, 0)
    if limit == 0:
        return OperationResult.fail(
            LedgerError.NO_LIMIT_DEFINED,
            f'No monthly limit defined for {coupon_type.value} coupons for this employee role.',
        )

    now = _now()
    month_start, month_end = month_bounds(now)
    pending = db.execute(
        select(func.count(Coupon.seq)).where(
            Coupon.employee_id == employee_id,
            Coupon.coupon_type == coupon_type,
            Coupon.date_issued >= month_start,
            Coupon.date_issued < month_end,
            Coupon.status == CouponStatus.ISSUED,
        )
    ).scalar_one()
    if pending:
        return OperationResult.fail(
            LedgerError.PENDING_REDEMPTION,
            f'Employee must redeem all existing {coupon_type.value} coupons for this month '
            'before new ones can be generated.',
        )

    coupons = _build_coupons(db, count=limit, coupon_type=coupon_type, issued_at=now, employee_id=employee_id)
    if coupons is None:
        return _code_space_exhausted()
    db.add_all(coupons)
    db.flush()

    create_notification(
        db,
        employee_id=employee_id,
        message=f'You have received {limit} new {coupon_type.value} coupon(s).',
        notification_type=NotificationType.NEW_COUPON,
    )
    dispatch_coupon_email(db, employee=employee, count=limit, coupon_type=coupon_type.value)
    logger.info('Issued %s %s coupons to employee %s', limit, coupon_type.value, employee_id)
    return OperationResult.ok(
        f'{limit} {coupon_type.value} coupons generated successfully for {employee.name}.',
        count=limit,
        payload=coupons,
    )


def issue_contractor_batch(
    db: Session,
    *,
    contractor_id: int,
    coupon_type: CouponType,
    quantity: int,
) -> OperationResult:
    contractor = db.get(Contractor, contractor_id)
    if not contractor:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Contractor not found.')
    if quantity <= 0:
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'Quantity must be at least 1.')

    coupons = _build_coupons(
        db,
        count=quantity,
        coupon_type=coupon_type,
        issued_at=_now(),
        contractor_id=contractor_id,
    )
    if coupons is None:
        return _code_space_exhausted()
    db.add_all(coupons)
    db.flush()

    logger.info('Issued %s %s coupons to contractor %s', quantity, coupon_type.value, contractor_id)
    return OperationResult.ok(
        f'{quantity} {coupon_type.value} coupons generated for {contractor.business_name}.',
        count=quantity,
        payload=coupons,
    )


def available_pool(db: Session, *, contractor_id: int, coupon_type: CouponType) -> list[Coupon]:
    return db.execute(
        select(Coupon)
        .where(
            Coupon.contractor_id == contractor_id,
            Coupon.coupon_type == coupon_type,
            Coupon.status == CouponStatus.ISSUED,
            Coupon.employee_id.is_(None),
        )
        .order_by(Coupon.seq.asc())
    ).scalars().all()


def assign_from_pool(
    db: Session,
    *,
    contractor_id: int,
    employee_id: int,
    coupon_type: CouponType,
    quantity: int,
    workers_of: str | None = None,
) -> OperationResult:
    """Moves pool coupons to an employee.

    With ``workers_of`` set, only employees whose ``contractor_name`` matches it can
    receive coupons; anyone else reads as not found, after the pool check.
    """
    if quantity <= 0:
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'Quantity must be at least 1.')

    available = available_pool(db, contractor_id=contractor_id, coupon_type=coupon_type)
    if len(available) < quantity:
        return OperationResult.fail(
            LedgerError.INSUFFICIENT_POOL,
            f'Not enough available {coupon_type.value} coupons. '
            f'You have {len(available)}, but tried to assign {quantity}.',
        )

    employee = db.get(Employee, employee_id)
    if not employee or (workers_of is not None and employee.contractor_name != workers_of):
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Employee not found.')

    assigned = available[:quantity]
    for coupon in assigned:
        coupon.employee_id = employee.id
    db.flush()

    create_notification(
        db,
        employee_id=employee.id,
        message=f'You have received {quantity} new {coupon_type.value} coupon(s) from your contractor.',
        notification_type=NotificationType.NEW_COUPON,
    )
    return OperationResult.ok(
        f'{quantity} {coupon_type.value} coupons assigned successfully to {employee.name}.',
        count=quantity,
        payload=assigned,
    )


def _mark_redeemed(db: Session, coupon: Coupon) -> None:
    coupon.status = CouponStatus.REDEEMED
    coupon.redeem_date = _now()
    db.flush()


def redeem_by_code(db: Session, *, code: str) -> OperationResult:
    code = code.strip()
    coupon = db.execute(
        select(Coupon)
        .where(Coupon.redemption_code == code, Coupon.status == CouponStatus.ISSUED)
        .order_by(Coupon.seq.asc())
    ).scalars().first()

    if not coupon:
        already_redeemed = db.execute(
            select(Coupon.seq)
            .where(Coupon.redemption_code == code, Coupon.status == CouponStatus.REDEEMED)
            .limit(1)
        ).scalar_one_or_none()
        if already_redeemed is not None:
            return OperationResult.fail(LedgerError.ALREADY_REDEEMED, 'This coupon has already been redeemed.')
        return OperationResult.fail(LedgerError.INVALID_CODE, 'Invalid coupon code.')

    if coupon.is_guest_coupon:
        sharer = db.get(Employee, coupon.shared_by_employee_id) if coupon.shared_by_employee_id else None
        _mark_redeemed(db, coupon)
        return OperationResult.ok(
            f"Guest coupon redeemed successfully (shared by {sharer.name if sharer else 'Unknown'}).",
            count=1,
            payload=coupon,
        )

    if coupon.employee_id is None:
        return OperationResult.fail(LedgerError.UNASSIGNED, 'This coupon has not been assigned to an employee yet.')

    employee = db.get(Employee, coupon.employee_id)
    if employee and employee.status == EmployeeStatus.DEACTIVATED:
        return OperationResult.fail(
            LedgerError.EMPLOYEE_DEACTIVATED,
            'Cannot redeem coupon. Employee account is deactivated.',
        )

    _mark_redeemed(db, coupon)
    return OperationResult.ok(
        f"Coupon redeemed successfully for {employee.name if employee else 'Unknown'}.",
        count=1,
        payload=coupon,
    )


def remove_coupon(db: Session, *, coupon_id: str) -> OperationResult:
    coupon = db.execute(select(Coupon).where(Coupon.coupon_id == coupon_id)).scalar_one_or_none()
    if not coupon:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Coupon not found.')
    if coupon.status == CouponStatus.REDEEMED:
        return OperationResult.fail(LedgerError.ALREADY_REDEEMED, 'Cannot remove a redeemed coupon.')

    db.delete(coupon)
    db.flush()
    return OperationResult.ok(f'Coupon {coupon_id} removed successfully.', count=1)


def remove_last_batch(db: Session, *, employee_id: int) -> OperationResult:
    latest = db.execute(
        select(func.max(Coupon.date_issued)).where(
            Coupon.employee_id == employee_id,
            Coupon.status == CouponStatus.ISSUED,
        )
    ).scalar_one()
    if latest is None:
        return OperationResult.fail(LedgerError.NONE_FOUND, 'No unredeemed coupons found for this employee.')

    result = db.execute(
        delete(Coupon)
        .where(
            Coupon.employee_id == employee_id,
            Coupon.status == CouponStatus.ISSUED,
            Coupon.date_issued == latest,
        )
        .execution_options(synchronize_session='fetch')
    )
    db.flush()
    removed = result.rowcount or 0
    return OperationResult.ok(f'Successfully removed the last batch of {removed} coupon(s).', count=removed)


def generate_guest_pass(db: Session, *, employee_id: int, coupon_type: CouponType) -> OperationResult:
    employee = db.get(Employee, employee_id)
    if not employee:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Employee not found.')

    now = _now()
    day_start, day_end = day_bounds(now)
    todays_passes = db.execute(
        select(func.count(Coupon.seq)).where(
            Coupon.is_guest_coupon.is_(True),
            Coupon.shared_by_employee_id == employee_id,
            Coupon.coupon_type == coupon_type,
            Coupon.date_issued >= day_start,
            Coupon.date_issued < day_end,
        )
    ).scalar_one()
    if todays_passes >= GUEST_PASS_DAILY_LIMIT:
        return OperationResult.fail(
            LedgerError.DAILY_LIMIT_REACHED,
            f'You have reached your daily limit of {GUEST_PASS_DAILY_LIMIT} {coupon_type.value} guest passes.',
        )

    coupons = _build_coupons(
        db,
        count=1,
        coupon_type=coupon_type,
        issued_at=now,
        shared_by_employee_id=employee_id,
    )
    if coupons is None:
        return _code_space_exhausted()
    guest_coupon = coupons[0]
    db.add(guest_coupon)
    db.flush()
    return OperationResult.ok('Guest pass generated successfully.', count=1, payload=guest_coupon)


def get_coupon(db: Session, *, coupon_id: str) -> Coupon | None:
    return db.execute(select(Coupon).where(Coupon.coupon_id == coupon_id)).scalar_one_or_none()


def coupons_for_employee(db: Session, *, employee_id: int) -> list[Coupon]:
    return db.execute(
        select(Coupon).where(Coupon.employee_id == employee_id).order_by(Coupon.seq.asc())
    ).scalars().all()


def next_available_coupons(db: Session, *, employee_id: int) -> list[Coupon]:
    issued = db.execute(
        select(Coupon)
        .where(Coupon.employee_id == employee_id, Coupon.status == CouponStatus.ISSUED)
        .order_by(Coupon.date_issued.asc(), Coupon.seq.asc())
    ).scalars().all()
    first_by_type: dict[CouponType, Coupon] = {}
    for coupon in issued:
        first_by_type.setdefault(coupon.coupon_type, coupon)
    return [first_by_type[t] for t in MEAL_TYPE_ORDER if t in first_by_type]


def guest_passes_for(db: Session, *, employee_id: int) -> list[Coupon]:
    return db.execute(
        select(Coupon)
        .where(Coupon.is_guest_coupon.is_(True), Coupon.shared_by_employee_id == employee_id)
        .order_by(Coupon.date_issued.desc(), Coupon.seq.desc())
    ).scalars().all()


def list_coupons(
    db: Session,
    *,
    status: CouponStatus | None = None,
    coupon_type: CouponType | None = None,
    employee_id: int | None = None,
    limit: int | None = 500,
) -> list[Coupon]:
    conditions = []
    if status:
        conditions.append(Coupon.status == status)
    if coupon_type:
        conditions.append(Coupon.coupon_type == coupon_type)
    if employee_id:
        conditions.append(Coupon.employee_id == employee_id)
    stmt = select(Coupon).where(*conditions).order_by(Coupon.date_issued.desc(), Coupon.seq.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.execute(stmt).scalars().all()
