"""
Transcript API Routes

Download a voice transcript report as PDF.
"""

import base64
import logging
from uuid import UUID

from fastapi import APIRouter

from app.api.dependencies import CurrentUserDep, RepositoriesDep
from app.infrastructure.exceptions import NotFoundError
from app.infrastructure.reports import pdf_filename, render_transcript_pdf


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/transcripts/{transcript_id}/pdf")
async def generate_transcript_pdf(
    transcript_id: UUID,
    user: CurrentUserDep,
    repos: RepositoriesDep,
):
    """
    Render one of the caller's transcripts as a PDF report.

    Returns:
        ``{"success": true, "pdf": <base64>, "filename": "transcript-<id8>.pdf"}``

    Raises:
        NotFoundError: unknown id, or a transcript owned by someone else
    """
    transcript = await repos.transcripts.get_for_owner(transcript_id, user.id)
    if transcript is None:
        raise NotFoundError("Transcript not found or access denied")

    template = (
        await repos.templates.get_by_id(transcript.template_id)
        if transcript.template_id
        else None
    )
    pdf = render_transcript_pdf(
        transcript.transcript,
        transcript.created_at,
        template_name=template.name if template else None,
        filled_data=transcript.filled_data,
    )
    logger.info(f"Generated PDF for transcript {transcript.id} ({len(pdf)} bytes)")
    return {
        "success": True,
        "pdf": base64.b64encode(pdf).decode("ascii"),
        "filename": pdf_filename(transcript.id),
    }
