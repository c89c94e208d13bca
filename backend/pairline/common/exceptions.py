# pairline/common/exceptions.py
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework.exceptions import NotFound, ValidationError


class BrokerError(Exception):
    """
    브로커 에러 베이스.
    code는 클라이언트로 그대로 나가는 값이라 바꾸면 안 됨.
    """

    code = "BROKER_ERROR"
    http_status = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def as_payload(self):
        return {"code": self.code, "message": self.message}


class InvalidInput(BrokerError):
    code = "INVALID_INPUT"


class NotRegistered(BrokerError):
    code = "NOT_REGISTERED"
    http_status = 403


class AlreadyQueued(BrokerError):
    code = "ALREADY_QUEUED"
    http_status = 409


class AlreadyInCall(BrokerError):
    code = "ALREADY_IN_CALL"
    http_status = 409


class CallNotFound(BrokerError):
    code = "CALL_NOT_FOUND"
    http_status = 404


class NotParticipant(BrokerError):
    code = "NOT_PARTICIPANT"
    http_status = 403


class UserNotFound(BrokerError):
    code = "USER_NOT_FOUND"
    http_status = 404


class StaleConnection(BrokerError):
    # 내부용: 클라에 노출하지 않고 eviction으로 처리
    code = "STALE_CONNECTION"


def error_body(code: str, message: str):
    return {
        "success": False,
        "data": None,
        "error": {"code": code, "message": message},
    }


def custom_exception_handler(exc, context):
    if isinstance(exc, BrokerError):
        return Response(error_body(exc.code, exc.message), status=exc.http_status)

    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(exc, NotFound):
        response.data = error_body("NOT_FOUND", "resource not found")
    elif isinstance(exc, ValidationError):
        response.data = error_body("VALIDATION_ERROR", "invalid request")
    else:
        response.data = error_body("ERROR", str(getattr(exc, "detail", exc)))

    return response
