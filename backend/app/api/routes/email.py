"""
Email API Routes

Transactional template email through Brevo.
"""

import logging

from fastapi import APIRouter

from app.api.dependencies import BrevoClientDep, CurrentUserDep
from app.domain.email import SendEmailRequest
from app.infrastructure.exceptions import ValidationError


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/email/send")
async def send_email(
    request: SendEmailRequest,
    user: CurrentUserDep,
    brevo: BrevoClientDep,
):
    """Send a Brevo template email and return Brevo's response body."""
    if request.template_id is None or not request.to:
        raise ValidationError("Missing required fields: templateId and to")

    result = await brevo.send_template_email(
        template_id=request.template_id,
        to_email=request.to,
        to_name=request.to_name,
        params=request.params,
        attachment=request.attachment,
    )
    logger.info(f"User {user.id} sent email template {request.template_id}")
    return result
