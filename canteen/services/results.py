from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class LedgerError(str, Enum):
    NOT_FOUND = 'NOT_FOUND'
    ROLE_MISMATCH = 'ROLE_MISMATCH'
    NO_LIMIT_DEFINED = 'NO_LIMIT_DEFINED'
    PENDING_REDEMPTION = 'PENDING_REDEMPTION'
    INSUFFICIENT_POOL = 'INSUFFICIENT_POOL'
    INVALID_CODE = 'INVALID_CODE'
    ALREADY_REDEEMED = 'ALREADY_REDEEMED'
    UNASSIGNED = 'UNASSIGNED'
    EMPLOYEE_DEACTIVATED = 'EMPLOYEE_DEACTIVATED'
    NONE_FOUND = 'NONE_FOUND'
    DAILY_LIMIT_REACHED = 'DAILY_LIMIT_REACHED'
    ACCOUNT_DEACTIVATED = 'ACCOUNT_DEACTIVATED'
    INVALID_CREDENTIALS = 'INVALID_CREDENTIALS'
    WRONG_PASSWORD = 'WRONG_PASSWORD'
    INVALID_INPUT = 'INVALID_INPUT'
    DUPLICATE_LOGIN_ID = 'DUPLICATE_LOGIN_ID'
    CODE_SPACE_EXHAUSTED = 'CODE_SPACE_EXHAUSTED'


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: str
    error: LedgerError | None = None
    count: int = 0
    payload: Any = None

    @classmethod
    def ok(cls, message: str, *, count: int = 0, payload: Any = None) -> OperationResult:
        return cls(success=True, message=message, count=count, payload=payload)

    @classmethod
    def fail(cls, error: LedgerError, message: str) -> OperationResult:
        return cls(success=False, message=message, error=error)
