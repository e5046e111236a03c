"""
Perpusnas OAI-PMH Diagnostic Routes

Raw harvest results and connectivity checks for the Indonesian
national library endpoints.
"""

from fastapi import APIRouter, Depends
from loguru import logger

from shelfmark.api.dependencies import get_perpusnas
from shelfmark.api.schemas import ConnectionProbeResponse, ErrorResponse, HarvestResponse
from shelfmark.metadata.isbn import normalize_isbn


router = APIRouter(prefix="/perpusnas", tags=["perpusnas"])


# Declared before /{isbn} so "test" is not taken as an ISBN
@router.get("/test", response_model=ConnectionProbeResponse)
async def test_connection(harvester=Depends(get_perpusnas)):
    """Send Identify to each endpoint until one answers."""
    probe = await harvester.identify()
    if not probe.available:
        logger.warning(f"No OAI-PMH endpoint reachable: {probe.errors}")
    return probe.to_dict()


@router.get(
    "/{isbn}",
    response_model=HarvestResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid ISBN"},
    },
)
async def harvest_isbn(
    isbn: str,
    harvester=Depends(get_perpusnas),
):
    """Harvest one ISBN, returning the raw MARC fields alongside the record."""
    normalized = normalize_isbn(isbn)
    result = await harvester.harvest(normalized)
    return result.to_dict()
