"""Custom HTTP exceptions and domain errors."""

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Exception raised when a resource is not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} with id '{identifier}' not found",
        )


class ForbiddenError(HTTPException):
    """Exception raised when a webhook handshake or signature check fails."""

    def __init__(self, detail: str = "Verification failed"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class BadRequestError(HTTPException):
    """Exception raised for bad requests."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class PlatformRejection(HTTPException):
    """The messaging platform refused an outbound send.

    ``is_policy`` is set when the refusal is a messaging-window rejection, so
    the operator can be told to wait for the customer instead of retrying.
    """

    def __init__(
        self,
        reason: str,
        code: int | None = None,
        subcode: int | None = None,
        is_policy: bool = False,
    ):
        self.reason = reason
        self.code = code
        self.subcode = subcode
        self.is_policy = is_policy
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "reason": reason,
                "code": code,
                "subcode": subcode,
                "is_policy": is_policy,
            },
        )


class PersistenceError(Exception):
    """The store was unreachable or rejected a write.

    Writes are idempotent, so recovery is left to platform redelivery.
    """

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
