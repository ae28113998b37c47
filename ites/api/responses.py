"""Translate typed core results into HTTP responses."""

from typing import TypeVar

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ites.engine.errors import ErrorKind, OperationResult, WorkflowError

T = TypeVar("T")

STATUS_CODES = {
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PERSISTENCE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_detail(error: WorkflowError) -> dict:
    if error.kind is ErrorKind.PERSISTENCE:
        # Store details stay in the logs
        return {"error": error.kind.value, "reason": "Internal server error"}
    return error.to_dict()


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    """Render a WorkflowError with the same envelope as HTTPException."""
    return JSONResponse(status_code=STATUS_CODES[exc.kind], content={"detail": error_detail(exc)})


def unwrap(result: OperationResult[T]) -> T:
    """Return the value or raise the error for ``workflow_error_handler``."""
    if result.error is not None:
        raise result.error
    return result.value
