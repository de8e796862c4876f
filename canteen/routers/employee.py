from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from canteen.auth import Principal, get_current_principal, home_path_for
from canteen.db import get_db
from canteen.dependencies import banner_from_query, form_coupon_type, get_client_ip, get_templates, redirect_with_result
from canteen.models import CouponStatus
from canteen.security.csrf import verify_csrf
from canteen.services import coupon_ledger_service as ledger
from canteen.services import notification_service
from canteen.services.audit_service import log_audit
from canteen.services.menu_service import get_menu_for_date, menu_id_for
from canteen.services.qr_service import render_qr_png
from canteen.services.report_service import employee_dashboard

router = APIRouter(tags=['employee'])

GUEST_SHARE_TEMPLATE = 'Here is your guest coupon for the canteen ({coupon_type}). Your redemption code is: *{code}*'


def _employee_only(principal: Principal) -> RedirectResponse | None:
    if not principal.is_employee:
        return RedirectResponse(home_path_for(principal), status_code=303)
    return None


@router.get('/contractual-employee')
def contractual_employee_redirect():
    return RedirectResponse('/employee', status_code=303)


@router.get('/employee')
def home(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    redirect = _employee_only(principal)
    if redirect:
        return redirect

    guest_pass = None
    guest_coupon_id = request.query_params.get('guest')
    if guest_coupon_id:
        coupon = ledger.get_coupon(db, coupon_id=guest_coupon_id)
        if coupon and coupon.is_guest_coupon and coupon.shared_by_employee_id == principal.id:
            share_text = GUEST_SHARE_TEMPLATE.format(coupon_type=coupon.coupon_type.value, code=coupon.redemption_code)
            guest_pass = {'coupon': coupon, 'share_url': f'https://wa.me/?text={quote(share_text)}'}

    today_id = menu_id_for(datetime.now(tz=timezone.utc).date())
    return templates.TemplateResponse(
        request,
        'employee_home.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'dashboard': employee_dashboard(db, employee_id=principal.id),
            'menu': get_menu_for_date(db, today_id),
            'notifications': notification_service.list_for_employee(db, employee_id=principal.id, limit=20),
            'unread': notification_service.unread_count(db, employee_id=principal.id),
            'guest_pass': guest_pass,
            'guest_pass_types': ledger.GUEST_PASS_TYPES,
        },
    )


@router.get('/employee/coupons/{coupon_id}/qr')
def coupon_qr(
    coupon_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    coupon = ledger.get_coupon(db, coupon_id=coupon_id)
    owned = coupon is not None and principal.is_employee and (
        coupon.employee_id == principal.id or coupon.shared_by_employee_id == principal.id
    )
    if not owned:
        raise HTTPException(status_code=404, detail='Coupon not found')
    if coupon.status != CouponStatus.ISSUED:
        raise HTTPException(status_code=410, detail='Coupon already redeemed')
    return Response(
        content=render_qr_png(coupon.redemption_code),
        media_type='image/png',
        headers={'Cache-Control': 'no-store'},
    )


@router.post('/employee/guest-passes')
async def create_guest_pass(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    redirect = _employee_only(principal)
    if redirect:
        return redirect

    form = await request.form()
    coupon_type = form_coupon_type(form)
    if coupon_type not in ledger.GUEST_PASS_TYPES:
        raise HTTPException(status_code=400, detail=f'Guest passes are not available for {coupon_type.value}')

    result = ledger.generate_guest_pass(db, employee_id=principal.id, coupon_type=coupon_type)
    target = '/employee'
    if result.success:
        log_audit(
            db,
            actor=principal,
            action='GUEST_PASS_CREATED',
            ip=get_client_ip(request),
            metadata={'coupon_id': result.payload.coupon_id, 'coupon_type': coupon_type.value},
        )
        target = f'/employee?guest={result.payload.coupon_id}'
    db.commit()
    return redirect_with_result(target, result)


@router.post('/employee/notifications/{notification_id}/read')
def mark_notification_read(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    if principal.is_employee:
        notification_service.mark_notification_read(db, notification_id=notification_id, employee_id=principal.id)
        db.commit()
    return RedirectResponse('/employee', status_code=303)


@router.post('/employee/notifications/read-all')
def mark_all_notifications_read(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    if principal.is_employee:
        notification_service.mark_all_read(db, employee_id=principal.id)
        db.commit()
    return RedirectResponse('/employee', status_code=303)
