"""
Domain exceptions for the CitizenES service.

Services raise these; routers translate them with ``to_http_exception``.
"""
from fastapi import HTTPException, status


class CitizenESException(Exception):
    """Base exception for domain errors"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__
        super().__init__(self.message)


class AuthenticationRequiredError(CitizenESException):
    """You must be logged in"""
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(CitizenESException):
    """Not authorized to perform this action"""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(CitizenESException):
    """Resource not found"""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: str = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class InputValidationError(CitizenESException):
    """Invalid input data"""


class ConflictError(CitizenESException):
    """Resource already exists"""
    status_code = status.HTTP_409_CONFLICT


class EngagementError(CitizenESException):
    """Raised when a like/follow request repeats or undoes nothing"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(self.template.format(entity=entity))


class AlreadyLikedError(EngagementError):
    template = "You have already liked this {entity}"


class NotLikedError(EngagementError):
    template = "You have not liked this {entity}"


class AlreadyFollowingError(EngagementError):
    template = "You are already following this {entity}"


class NotFollowingError(EngagementError):
    template = "You are not following this {entity}"


def to_http_exception(exc: CitizenESException) -> HTTPException:
    """Map a domain exception onto the HTTP error the client sees"""
    headers = None
    if isinstance(exc, AuthenticationRequiredError):
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers)
