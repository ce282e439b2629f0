"""
UserTemplate SQLModel

User-defined report schema consumed read-only by template extraction.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import Column, JSON
from sqlmodel import Field

from app.domain.transcript import TemplateField
from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class UserTemplate(UUIDMixin, TimestampMixin, table=True):
    """Report template with an ordered list of fields."""

    __tablename__ = "user_templates"

    user_id: UUID = Field(index=True, nullable=False)
    name: str = Field(max_length=255)
    fields: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    template_structure: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_column=Column(JSON),
    )
    is_default: bool = Field(default=False)

    def template_fields(self) -> List[TemplateField]:
        """Typed view of ``fields``, skipping malformed entries."""
        parsed = []
        for raw in self.fields or []:
            if isinstance(raw, dict) and raw.get("name"):
                parsed.append(TemplateField.model_validate(raw))
        return parsed
