"""
Driver rating endpoint.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from makoexpress.api.deps import CurrentUser, DatabaseSession
from makoexpress.schemas.drivers import RatingRequest, RatingResponse
from makoexpress.services.orders.repository import OrderNotFoundError
from makoexpress.services.ratings.service import (
    RatingConflictError,
    RatingPermissionError,
    RatingService,
    RatingValidationError,
)

router = APIRouter(prefix="/ratings", tags=["Ratings"])


@router.post(
    "/{order_id}",
    response_model=RatingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Rate the driver of a delivered order",
)
async def rate_driver(
    order_id: UUID,
    payload: RatingRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> RatingResponse:
    try:
        rating = await RatingService(db).rate_driver(
            order_id, current_user.id, payload.rating, comment=payload.comment
        )
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except RatingPermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    except RatingConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except RatingValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return RatingResponse.model_validate(rating)
