from __future__ import annotations

from urllib.parse import urlencode

from fastapi import HTTPException, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from canteen.models import CouponType
from canteen.services.coupon_ledger_service import parse_coupon_type
from canteen.services.results import OperationResult


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def banner_from_query(request: Request) -> dict | None:
    message = request.query_params.get('message')
    if not message:
        return None
    kind = request.query_params.get('status', 'success')
    return {'type': 'error' if kind == 'error' else 'success', 'text': message}


def redirect_with_result(path: str, result: OperationResult) -> RedirectResponse:
    query = urlencode({'status': 'success' if result.success else 'error', 'message': result.message})
    separator = '&' if '?' in path else '?'
    return RedirectResponse(f'{path}{separator}{query}', status_code=303)


def form_int(form, key: str, *, default: int | None = None) -> int:
    raw = str(form.get(key, '')).strip()
    if raw == '' and default is not None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid value for {key}') from exc


def form_coupon_type(form, key: str = 'coupon_type') -> CouponType:
    try:
        return parse_coupon_type(str(form.get(key, '')))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
