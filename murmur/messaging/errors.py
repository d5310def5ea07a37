"""
Outcome types for messaging operations.

Business rejections (a blocked user, an empty body, a message that is not
yours) are expected and come back as a ``Result`` carrying an ``ErrorCode``.
Only storage faults are raised.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    # authorization
    SELF = 'SELF'
    BLOCKED = 'BLOCKED'
    UNAVAILABLE = 'UNAVAILABLE'
    NOT_MUTUAL_FOLLOW = 'NOT_MUTUAL_FOLLOW'
    NOT_ALLOWED = 'NOT_ALLOWED'
    NOT_PARTICIPANT = 'NOT_PARTICIPANT'
    # validation
    EMPTY_BODY = 'EMPTY_BODY'
    TOO_LONG = 'TOO_LONG'
    # lookup
    NOT_FOUND = 'NOT_FOUND'


VALIDATION_ERRORS = frozenset({ErrorCode.EMPTY_BODY, ErrorCode.TOO_LONG})
NOT_FOUND_ERRORS = frozenset({ErrorCode.NOT_FOUND, ErrorCode.NOT_PARTICIPANT})

MESSAGES = {
    ErrorCode.SELF: 'You cannot message yourself.',
    ErrorCode.BLOCKED: 'Unable to send message.',
    ErrorCode.UNAVAILABLE: 'This user cannot receive messages.',
    ErrorCode.NOT_MUTUAL_FOLLOW: 'You can only message users who follow you back.',
    ErrorCode.NOT_ALLOWED: 'You can no longer reply to this conversation.',
    ErrorCode.NOT_PARTICIPANT: 'Conversation not found.',
    ErrorCode.EMPTY_BODY: 'Message cannot be empty.',
    ErrorCode.TOO_LONG: 'Message is too long.',
    ErrorCode.NOT_FOUND: 'Not found.',
}


def describe(code: Optional[ErrorCode]) -> Optional[str]:
    if code is None:
        return None
    return MESSAGES[code]


@dataclass(frozen=True)
class Result:
    """Success value or a discriminated failure.

    ``reason`` refines ``error`` when the failure came from the relationship
    gate, e.g. ``error=NOT_ALLOWED, reason=BLOCKED``.
    """
    ok: bool
    value: Any = None
    error: Optional[ErrorCode] = None
    reason: Optional[ErrorCode] = None

    @classmethod
    def success(cls, value: Any = None) -> 'Result':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorCode, reason: Optional[ErrorCode] = None) -> 'Result':
        return cls(ok=False, error=error, reason=reason)

    def __bool__(self) -> bool:
        return self.ok
