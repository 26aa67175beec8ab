"""Error taxonomy shared by the engine and the JSON API."""
import logging

logger = logging.getLogger(__name__)


class QuizboardError(Exception):
    status_code = 500
    code = "internal"

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class Unauthorized(QuizboardError):
    status_code = 401
    code = "unauthorized"


class NotFound(QuizboardError):
    status_code = 404
    code = "not_found"


class Conflict(QuizboardError):
    """Duplicate daily submission or a naming collision."""
    status_code = 409
    code = "conflict"


class ValidationError(QuizboardError):
    status_code = 400
    code = "validation_error"


class Unavailable(QuizboardError):
    """No daily item could be computed (empty pool)."""
    status_code = 404
    code = "unavailable"


class Internal(QuizboardError):
    status_code = 500
    code = "internal"


def error_response(error: QuizboardError):
    if error.status_code >= 500:
        logger.error("request failed: %s", error.message)
    return {"error": error.message, "code": error.code}, error.status_code
