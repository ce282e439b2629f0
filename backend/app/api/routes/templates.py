"""
Template API Routes

Fill a report template from a transcript with the LLM extraction service.
"""

import logging

from fastapi import APIRouter

from app.api.dependencies import CurrentUserDep, ExtractionServiceDep
from app.domain.transcript import FillTemplateRequest
from app.infrastructure.exceptions import ValidationError


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/templates/fill")
async def fill_template(
    request: FillTemplateRequest,
    user: CurrentUserDep,
    extractor: ExtractionServiceDep,
):
    """
    Extract template field values from a transcript.

    Returns:
        ``{"success": true, "filledData": {...}}`` keyed by field name
    """
    if not request.transcript or not request.template_fields:
        raise ValidationError("Missing required fields: transcript and templateFields")

    filled_data = await extractor.extract(request.transcript, request.template_fields)
    logger.info(f"Filled {len(request.template_fields)} template fields for user {user.id}")
    return {"success": True, "filledData": filled_data}
