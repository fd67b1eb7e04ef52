"""
Error types raised by the service layer
Routes translate them to HTTP responses (see api.main)
"""


class ServiceError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnauthenticatedError(ServiceError):
    code = "unauthenticated"
    status_code = 401


class PermissionDeniedError(ServiceError):
    code = "permission-denied"
    status_code = 403


class InvalidArgumentError(ServiceError):
    code = "invalid-argument"
    status_code = 400


class NotFoundError(ServiceError):
    code = "not-found"
    status_code = 404


class AlreadyExistsError(ServiceError):
    code = "already-exists"
    status_code = 409


class CallableError(Exception):
    """Typed failure of a privileged callable function"""

    STATUS_CODES = {
        "unauthenticated": 401,
        "permission-denied": 403,
        "invalid-argument": 400,
        "not-found": 404,
        "internal": 500,
    }

    def __init__(self, code: str, message: str):
        if code not in self.STATUS_CODES:
            raise ValueError(f"Unknown callable error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return self.STATUS_CODES[self.code]

    @classmethod
    def from_service_error(cls, error: ServiceError) -> "CallableError":
        code = error.code if error.code in cls.STATUS_CODES else "internal"
        return cls(code, error.message)
