from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from canteen.auth import GuardRedirect, Principal, contractor_access
from canteen.db import get_db
from canteen.dependencies import (
    banner_from_query,
    form_coupon_type,
    form_int,
    get_client_ip,
    get_templates,
    redirect_with_result,
)
from canteen.models import Contractor, CouponType
from canteen.security.csrf import verify_csrf
from canteen.services.audit_service import log_audit
from canteen.services.coupon_ledger_service import assign_from_pool
from canteen.services.report_service import contractor_dashboard

router = APIRouter(prefix='/contractor', tags=['contractor'])


def _load_contractor(db: Session, principal: Principal) -> Contractor:
    contractor = db.get(Contractor, principal.id)
    if contractor is None:
        raise GuardRedirect('/login')
    return contractor


@router.get('')
def home(
    request: Request,
    principal: Principal = Depends(contractor_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    contractor = _load_contractor(db, principal)
    return templates.TemplateResponse(
        request,
        'contractor_home.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'contractor': contractor,
            'dashboard': contractor_dashboard(db, contractor=contractor),
            'coupon_types': list(CouponType),
        },
    )


@router.post('/assign')
async def assign_coupons(
    request: Request,
    principal: Principal = Depends(contractor_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    contractor = _load_contractor(db, principal)
    form = await request.form()
    employee_id = form_int(form, 'employee_id')
    coupon_type = form_coupon_type(form)
    quantity = form_int(form, 'quantity')

    result = assign_from_pool(
        db,
        contractor_id=contractor.id,
        employee_id=employee_id,
        coupon_type=coupon_type,
        quantity=quantity,
        workers_of=contractor.business_name,
    )
    if result.success:
        log_audit(
            db,
            actor=principal,
            action='COUPONS_ASSIGNED',
            ip=get_client_ip(request),
            metadata={'employee_id': employee_id, 'coupon_type': coupon_type.value, 'count': result.count},
        )
    db.commit()
    return redirect_with_result('/contractor', result)
