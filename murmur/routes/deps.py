from fastapi import HTTPException

from .. import config
from ..messaging.errors import ErrorCode, Result, VALIDATION_ERRORS, NOT_FOUND_ERRORS, describe


def require_messaging():
    if not config.MESSAGING_ENABLED:
        raise HTTPException(403, detail={
            'code': 'MESSAGING_DISABLED',
            'reason': None,
            'message': 'Messaging is currently disabled.',
        })


def error_detail(code: ErrorCode, reason: ErrorCode = None) -> dict:
    if code == ErrorCode.TOO_LONG:
        message = f'Message cannot exceed {config.MESSAGE_MAX_LENGTH} characters.'
    else:
        message = describe(reason or code)
    return {'code': code.value, 'reason': reason.value if reason else None, 'message': message}


def http_error(result: Result) -> HTTPException:
    """Translate a failed Result into the HTTP error the client sees."""
    if result.error in NOT_FOUND_ERRORS:
        # missing and not-yours look the same from outside
        return HTTPException(404, detail=error_detail(ErrorCode.NOT_FOUND))
    if result.error in VALIDATION_ERRORS or result.error == ErrorCode.SELF:
        return HTTPException(400, detail=error_detail(result.error, result.reason))
    return HTTPException(403, detail=error_detail(result.error, result.reason))
