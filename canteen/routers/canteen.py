from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from canteen.auth import Principal, get_current_principal
from canteen.db import get_db
from canteen.dependencies import banner_from_query, get_client_ip, get_templates, redirect_with_result
from canteen.security.csrf import verify_csrf
from canteen.services.audit_service import log_audit
from canteen.services.coupon_ledger_service import redeem_by_code
from canteen.services.menu_service import MENU_FIELDS, get_menu_for_date, list_menus, menu_id_for, upsert_menu
from canteen.services.report_service import canteen_summary, redeemed_for_day

router = APIRouter(prefix='/canteen-manager', tags=['canteen'])


def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def _parse_day(raw: str | None) -> date:
    if not raw:
        return _today()
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Invalid date') from exc


@router.get('')
def home(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    selected = _parse_day(request.query_params.get('date'))
    return templates.TemplateResponse(
        request,
        'canteen_home.html',
        {
            'principal': principal,
            'summary': canteen_summary(db),
            'selected_date': selected.isoformat(),
            'groups': redeemed_for_day(db, day=selected),
            'menu': get_menu_for_date(db, menu_id_for(_today())),
        },
    )


@router.get('/redeem')
def redeem_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    templates: Jinja2Templates = Depends(get_templates),
):
    return templates.TemplateResponse(
        request,
        'canteen_redeem.html',
        {'principal': principal, 'banner': banner_from_query(request)},
    )


@router.post('/redeem')
async def redeem_submit(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    code = str(form.get('code', '')).strip()
    result = redeem_by_code(db, code=code)
    if result.success:
        log_audit(
            db,
            actor=principal,
            action='COUPON_REDEEMED',
            ip=get_client_ip(request),
            metadata={'coupon_id': result.payload.coupon_id, 'code': code},
        )
    db.commit()
    return redirect_with_result('/canteen-manager/redeem', result)


@router.get('/menu')
def menu_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    selected = _parse_day(request.query_params.get('date'))
    return templates.TemplateResponse(
        request,
        'canteen_menu.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'selected_date': selected.isoformat(),
            'menu': get_menu_for_date(db, menu_id_for(selected)),
            'recent_menus': list_menus(db),
            'fields': MENU_FIELDS,
        },
    )


@router.post('/menu')
async def menu_submit(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    menu_id = str(form.get('date', '')).strip()
    result = upsert_menu(db, menu_id=menu_id, **{field: str(form.get(field, '')) for field in MENU_FIELDS})
    if result.success:
        log_audit(
            db,
            actor=principal,
            action='MENU_UPSERTED',
            ip=get_client_ip(request),
            metadata={'menu_id': result.payload.id},
        )
    db.commit()
    target = f'/canteen-manager/menu?date={result.payload.id}' if result.success else '/canteen-manager/menu'
    return redirect_with_result(target, result)
