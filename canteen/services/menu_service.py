from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from canteen.models import DailyMenu
from canteen.services.results import LedgerError, OperationResult

MENU_FIELDS = ('breakfast', 'lunch', 'dinner', 'snacks')


def menu_id_for(day: date) -> str:
    return day.isoformat()


def parse_menu_id(menu_id: str) -> date:
    try:
        return date.fromisoformat(menu_id.strip())
    except ValueError as exc:
        raise ValueError(f'Invalid menu date: {menu_id}') from exc


def get_menu_for_date(db: Session, menu_id: str) -> DailyMenu | None:
    return db.get(DailyMenu, menu_id)


def list_menus(db: Session, *, limit: int = 14) -> list[DailyMenu]:
    return db.execute(select(DailyMenu).order_by(DailyMenu.id.desc()).limit(limit)).scalars().all()


def upsert_menu(
    db: Session,
    *,
    menu_id: str,
    breakfast: str | None = None,
    lunch: str | None = None,
    dinner: str | None = None,
    snacks: str | None = None,
) -> OperationResult:
    try:
        day = parse_menu_id(menu_id)
    except ValueError as exc:
        return OperationResult.fail(LedgerError.INVALID_INPUT, str(exc))

    values = {
        'breakfast': breakfast,
        'lunch': lunch,
        'dinner': dinner,
        'snacks': snacks,
    }
    values = {key: (value.strip() or None) if value else None for key, value in values.items()}
    # Menus are pinned to 12:00 UTC of their day.
    noon = datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc)

    menu_key = menu_id_for(day)
    menu = db.get(DailyMenu, menu_key)
    created = menu is None
    if created:
        menu = DailyMenu(id=menu_key, date=noon, **values)
        db.add(menu)
    else:
        menu.date = noon
        for key, value in values.items():
            setattr(menu, key, value)
    db.flush()
    verb = 'created' if created else 'updated'
    return OperationResult.ok(f'Menu for {menu_key} {verb}.', count=1, payload=menu)
