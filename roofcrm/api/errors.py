"""
Translation of typed commission outcomes into HTTP errors.
"""

from typing import TypeVar, Union

from fastapi import HTTPException, status

from roofcrm.services.results import (
    CommissionError,
    CommissionNotFound,
    ConfigurationMissing,
    InvalidTransition,
    LockedAfterApproval,
    PayoutRejected,
)

T = TypeVar("T")


def error_status(error: CommissionError) -> int:
    if isinstance(error, CommissionNotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (LockedAfterApproval, InvalidTransition)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, (PayoutRejected, ConfigurationMissing)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    return status.HTTP_400_BAD_REQUEST


def raise_for_result(result: Union[T, CommissionError]) -> T:
    """Return the result unchanged, or raise HTTPException for a typed error."""
    if isinstance(result, CommissionError):
        raise HTTPException(
            status_code=error_status(result),
            detail=result.message,
        )
    return result
