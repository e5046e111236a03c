"""
MARC Export API Routes
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from loguru import logger

from shelfmark.api.dependencies import Settings, get_app_settings
from shelfmark.api.schemas import ErrorResponse, MarcExportRequest
from shelfmark.marc import build_marc21_file


router = APIRouter(prefix="/marc", tags=["marc"])

MARC_MEDIA_TYPE = "application/marc"


@router.post(
    "/export",
    response_class=Response,
    responses={
        200: {"content": {MARC_MEDIA_TYPE: {}}, "description": "ISO 2709 file"},
        500: {"model": ErrorResponse, "description": "Record exceeds MARC limits"},
    },
)
async def export_marc(
    request: MarcExportRequest,
    settings: Settings = Depends(get_app_settings),
):
    """Serialize records into a single .mrc download."""
    now = datetime.now()
    payload = build_marc21_file(
        (record.to_metadata() for record in request.records),
        now=now,
        organization_code=settings.marc_organization_code,
    )
    filename = f"shelfmark-export-{now.strftime('%Y%m%d%H%M%S')}.mrc"

    logger.info(f"Exported {len(request.records)} record(s) to MARC21 ({len(payload)} bytes)")
    return Response(
        content=payload,
        media_type=MARC_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
