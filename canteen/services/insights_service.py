from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from canteen.config import settings
from canteen.models import Coupon, Employee

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = 'AI service is not configured in this environment.'
FAILURE_MESSAGE = 'Failed to get insights from the AI. The service may be temporarily unavailable.'


class InsightsError(RuntimeError):
    pass


def _today() -> str:
    return datetime.now(tz=timezone.utc).date().isoformat()


def simplify_employees(employees: list[Employee]) -> list[dict]:
    return [
        {
            'id': employee.id,
            'role': employee.role.value,
            'department': employee.department or 'N/A',
            'contractor': employee.contractor_name or 'N/A',
        }
        for employee in employees
    ]


def simplify_coupons(coupons: list[Coupon]) -> list[dict]:
    return [
        {
            'employeeId': coupon.employee_id,
            'couponType': coupon.coupon_type.value,
            'status': coupon.status.value,
            'dateIssued': coupon.date_issued.date().isoformat(),
            'redeemDate': coupon.redeem_date.date().isoformat() if coupon.redeem_date else None,
        }
        for coupon in coupons
    ]


def build_prompt(question: str, employees: list[Employee], coupons: list[Coupon]) -> str:
    data = json.dumps(
        {
            'employees': simplify_employees(employees),
            'coupons': simplify_coupons(coupons),
        },
        separators=(',', ':'),
    )
    return (
        'You are an AI assistant for a Canteen Management System.\n'
        "Analyze the provided JSON data to answer the user's question about coupon usage.\n"
        f'The current date is {_today()}.\n'
        "The JSON data contains two arrays: 'employees' and 'coupons'.\n"
        "- The 'employees' array links employee IDs to their roles, departments, and contractors.\n"
        "- The 'coupons' array contains records of every coupon, including its type, status, "
        'issue date, and redemption date.\n\n'
        'Provide a clear, concise, and helpful answer. Use bullet points for lists if it makes the answer clearer.\n\n'
        f'JSON Data:\n{data}\n\n'
        f'User\'s Question:\n"{question}"\n'
    )


def _gemini_post(prompt: str) -> dict:
    url = (
        f"{settings.gemini_api_base_url.rstrip('/')}/v1beta/models/"
        f'{quote(settings.gemini_model)}:generateContent'
    )
    req = Request(
        url=url,
        data=json.dumps({'contents': [{'parts': [{'text': prompt}]}]}).encode('utf-8'),
        headers={
            'Content-Type': 'application/json',
            'x-goog-api-key': settings.gemini_api_key or '',
        },
        method='POST',
    )
    try:
        with urlopen(req, timeout=settings.gemini_timeout_seconds) as response:
            return json.loads(response.read().decode('utf-8'))
    except HTTPError as exc:
        body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
        raise InsightsError(f'Gemini API error {exc.code}: {body}') from exc
    except URLError as exc:
        raise InsightsError(f'Gemini API network error: {exc.reason}') from exc


def _extract_text(payload: dict) -> str:
    candidates = payload.get('candidates') or []
    if not candidates:
        raise InsightsError(f'Gemini API returned no candidates: {payload}')
    parts = (candidates[0].get('content') or {}).get('parts') or []
    text = ''.join(part.get('text', '') for part in parts).strip()
    if not text:
        raise InsightsError('Gemini API returned an empty answer')
    return text


def generate_insights(question: str, employees: list[Employee], coupons: list[Coupon]) -> str:
    """Answers a free-text question about coupon usage; never raises."""
    if not settings.gemini_api_key:
        logger.warning('Gemini API key not configured; insights unavailable')
        return NOT_CONFIGURED_MESSAGE

    prompt = build_prompt(question.strip(), employees, coupons)
    try:
        return _extract_text(_gemini_post(prompt))
    except Exception:
        logger.exception('Gemini API call failed')
        return FAILURE_MESSAGE
