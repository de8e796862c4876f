from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request

from canteen.config import settings
from canteen.models import EmployeeRole, EmployeeStatus, PrincipalKind


@dataclass(frozen=True)
class Principal:
    kind: PrincipalKind
    id: int
    login_id: str
    display_name: str
    role: EmployeeRole | None = None
    status: EmployeeStatus | None = None

    @property
    def is_employee(self) -> bool:
        return self.kind == PrincipalKind.EMPLOYEE

    @property
    def is_contractor(self) -> bool:
        return self.kind == PrincipalKind.CONTRACTOR


class GuardRedirect(Exception):
    def __init__(self, location: str) -> None:
        super().__init__(location)
        self.location = location


def is_authenticated(principal: Principal | None) -> bool:
    return principal is not None


def is_admin(principal: Principal | None) -> bool:
    return principal is not None and principal.is_employee and principal.role == EmployeeRole.ADMIN


def is_super_admin(principal: Principal | None) -> bool:
    return principal is not None and principal.is_employee and principal.login_id == settings.super_admin_login_id


def is_contractor(principal: Principal | None) -> bool:
    return principal is not None and principal.is_contractor


def home_path_for(principal: Principal) -> str:
    if principal.kind == PrincipalKind.CONTRACTOR:
        return '/contractor'
    if principal.kind == PrincipalKind.EMPLOYEE:
        if principal.role == EmployeeRole.ADMIN:
            return '/admin'
        if principal.role == EmployeeRole.CANTEEN_MANAGER:
            return '/canteen-manager'
        return '/employee'
    raise ValueError(f'Unknown principal kind: {principal.kind}')


def get_session_principal(request: Request) -> Principal | None:
    return getattr(request.state, 'principal', None)


def get_current_principal(request: Request) -> Principal:
    principal = get_session_principal(request)
    if not is_authenticated(principal):
        raise GuardRedirect('/login')
    return principal


def require_guards(*guards):
    """Builds a dependency that runs ``(predicate, fallback)`` pairs in order."""

    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        for predicate, fallback in guards:
            if not predicate(principal):
                raise GuardRedirect(fallback)
        return principal

    return _dep


admin_access = require_guards((is_admin, '/login'))
super_admin_access = require_guards((is_super_admin, '/admin'))
contractor_access = require_guards((is_contractor, '/login'))
