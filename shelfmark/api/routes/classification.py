"""
Classification API Routes
"""

from fastapi import APIRouter, Depends
from loguru import logger

from shelfmark.api.dependencies import get_cascade
from shelfmark.api.schemas import BookRecord, ClassificationRequest, ErrorResponse


router = APIRouter(prefix="/classification", tags=["classification"])


@router.post(
    "",
    response_model=BookRecord,
    responses={
        429: {"model": ErrorResponse, "description": "Classification backend rate limited"},
        502: {"model": ErrorResponse, "description": "Classification backend failed"},
    },
)
async def classify_book(
    request: ClassificationRequest,
    cascade=Depends(get_cascade),
):
    """Fill DDC, LCC, call number and subjects for a record."""
    record = request.metadata.to_metadata()
    logger.info(f"Classifying ISBN {record.isbn} ({record.title!r})")

    classified = await cascade.classify(record)
    return classified.to_dict()
