"""
Email Domain Models

Request DTO for transactional template emails.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SendEmailRequest(BaseModel):
    """Request DTO for sending a Brevo template email."""
    model_config = ConfigDict(populate_by_name=True)

    template_id: Optional[int] = Field(None, alias="templateId")
    to: Optional[str] = None
    to_name: Optional[str] = Field(None, alias="toName")
    params: Optional[Dict[str, Any]] = None
    attachment: Optional[List[Dict[str, Any]]] = None
