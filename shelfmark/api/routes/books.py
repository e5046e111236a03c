"""
Book API Routes

ISBN lookup across the configured metadata sources.
"""

from fastapi import APIRouter, Depends
from loguru import logger

from shelfmark.api.dependencies import get_resolver
from shelfmark.api.schemas import BookLookupResponse, ErrorResponse


router = APIRouter(prefix="/books", tags=["books"])


@router.get(
    "/{isbn}",
    response_model=BookLookupResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid ISBN"},
        404: {"model": ErrorResponse, "description": "No source has the book"},
    },
)
async def lookup_book(
    isbn: str,
    resolver=Depends(get_resolver),
):
    """
    Resolve an ISBN into one merged record.

    All sources are queried concurrently; the response carries which of
    them answered and how complete the merged record is.
    """
    logger.info(f"Looking up ISBN: {isbn}")

    result = await resolver.resolve_or_raise(isbn)
    return {
        "metadata": result.data.to_dict(),
        "meta": result.meta.to_dict(),
        "cached": result.cached,
    }
