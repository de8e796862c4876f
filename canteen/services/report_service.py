from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from canteen.models import Contractor, Coupon, CouponStatus, CouponType, Employee
from canteen.services import coupon_ledger_service as ledger
from canteen.services.registry_service import employees_for_contractor


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _count(db: Session, *conditions) -> int:
    return db.execute(select(func.count(Coupon.seq)).where(*conditions)).scalar_one()


def _employee_names(db: Session) -> dict[int, str]:
    return {row.id: row.name for row in db.execute(select(Employee.id, Employee.name)).all()}


def admin_totals(db: Session) -> dict:
    day_start, day_end = ledger.day_bounds(_now())
    return {
        'total_issued': _count(db),
        'total_redeemed': _count(db, Coupon.status == CouponStatus.REDEEMED),
        'issued_today': _count(db, Coupon.date_issued >= day_start, Coupon.date_issued < day_end),
        'redeemed_today': _count(
            db,
            Coupon.status == CouponStatus.REDEEMED,
            Coupon.redeem_date >= day_start,
            Coupon.redeem_date < day_end,
        ),
        'employees': db.execute(select(func.count(Employee.id))).scalar_one(),
        'contractors': db.execute(select(func.count(Contractor.id))).scalar_one(),
    }


def _redeemed_between(db: Session, coupon_type: CouponType, start: datetime, end: datetime) -> int:
    return _count(
        db,
        Coupon.status == CouponStatus.REDEEMED,
        Coupon.coupon_type == coupon_type,
        Coupon.redeem_date >= start,
        Coupon.redeem_date < end,
    )


def canteen_summary(db: Session) -> dict:
    now = _now()
    day_start, day_end = ledger.day_bounds(now)
    month_start, month_end = ledger.month_bounds(now)
    return {
        'today_breakfast': _redeemed_between(db, CouponType.BREAKFAST, day_start, day_end),
        'today_lunch_dinner': _redeemed_between(db, CouponType.LUNCH_DINNER, day_start, day_end),
        'month_breakfast': _redeemed_between(db, CouponType.BREAKFAST, month_start, month_end),
        'month_lunch_dinner': _redeemed_between(db, CouponType.LUNCH_DINNER, month_start, month_end),
    }


def redeemed_for_day(db: Session, *, day: date) -> dict[str, list[dict]]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    coupons = db.execute(
        select(Coupon)
        .where(
            Coupon.status == CouponStatus.REDEEMED,
            Coupon.redeem_date >= start,
            Coupon.redeem_date < start + timedelta(days=1),
        )
        .order_by(Coupon.redeem_date.asc(), Coupon.seq.asc())
    ).scalars().all()
    names = _employee_names(db)
    groups: dict[str, list[dict]] = defaultdict(list)
    for coupon in coupons:
        groups[coupon.coupon_type.value].append(_history_row(coupon, names))
    return {t.value: groups[t.value] for t in CouponType if groups.get(t.value)}


def _history_row(coupon: Coupon, names: dict[int, str]) -> dict:
    if coupon.is_guest_coupon:
        holder = f"Guest of {names.get(coupon.shared_by_employee_id, 'Unknown')}"
    elif coupon.employee_id is not None:
        holder = names.get(coupon.employee_id, 'Unknown')
    else:
        holder = 'Unassigned'
    return {
        'coupon_id': coupon.coupon_id,
        'holder': holder,
        'employee_id': coupon.employee_id,
        'coupon_type': coupon.coupon_type.value,
        'redemption_code': coupon.redemption_code,
        'date_issued': coupon.date_issued,
        'redeem_date': coupon.redeem_date,
        'is_guest_coupon': coupon.is_guest_coupon,
    }


def redemption_history(db: Session, *, employee_id: int | None = None, limit: int = 500) -> list[dict]:
    conditions = [Coupon.status == CouponStatus.REDEEMED, Coupon.redeem_date.is_not(None)]
    if employee_id is not None:
        conditions.append(Coupon.employee_id == employee_id)
    coupons = db.execute(
        select(Coupon).where(*conditions).order_by(Coupon.redeem_date.desc(), Coupon.seq.desc()).limit(limit)
    ).scalars().all()
    names = _employee_names(db)
    return [_history_row(coupon, names) for coupon in coupons]


def employee_dashboard(db: Session, *, employee_id: int) -> dict:
    coupons = ledger.coupons_for_employee(db, employee_id=employee_id)
    used = sum(1 for c in coupons if c.status == CouponStatus.REDEEMED)
    guest_passes = ledger.guest_passes_for(db, employee_id=employee_id)
    return {
        'total': len(coupons),
        'used': used,
        'remaining': len(coupons) - used,
        'next_available': ledger.next_available_coupons(db, employee_id=employee_id),
        'guest_generated': len(guest_passes),
        'guest_redeemed': sum(1 for c in guest_passes if c.status == CouponStatus.REDEEMED),
        'guest_passes': guest_passes,
        'history': redemption_history(db, employee_id=employee_id),
    }


def contractor_dashboard(db: Session, *, contractor: Contractor) -> dict:
    pool = {}
    for coupon_type in CouponType:
        pool[coupon_type.value] = len(
            ledger.available_pool(db, contractor_id=contractor.id, coupon_type=coupon_type)
        )
    base = (Coupon.contractor_id == contractor.id, Coupon.employee_id.is_not(None))
    return {
        'pool': pool,
        'assigned_outstanding': _count(db, *base, Coupon.status == CouponStatus.ISSUED),
        'assigned_redeemed': _count(db, *base, Coupon.status == CouponStatus.REDEEMED),
        'employees': employees_for_contractor(db, business_name=contractor.business_name),
    }
