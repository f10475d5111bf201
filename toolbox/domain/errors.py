"""业务异常，路由层统一转换为 HTTP 响应"""
from typing import List, Optional


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None,
                 errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors or []


class ValidationError(ServiceError):
    status_code = 400


class AuthError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class LockedError(ServiceError):
    status_code = 423


class TooManyRequestsError(ServiceError):
    status_code = 429
