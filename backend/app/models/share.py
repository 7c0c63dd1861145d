"""Request/response schemas for QR report sharing.

JSON bodies use camelCase field names; Python code uses snake_case.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.utils.formats import to_iso


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShareRequest(_CamelModel):
    """Issue a share token for reports the caller owns."""

    resource_ids: list[str] = Field(min_length=1, max_length=100)
    expires_in: int | None = Field(default=None, ge=1)  # seconds; range checked against settings

    @field_validator("resource_ids")
    @classmethod
    def _ids_not_blank(cls, value: list[str]) -> list[str]:
        cleaned = [v.strip() for v in value]
        if any(not v for v in cleaned):
            raise ValueError("resourceIds must not contain empty ids")
        return cleaned


class ShareResponse(_CamelModel):
    wire_token: str
    qr_code: str  # PNG data URL of the wire token
    expires_at: str


class ValidateRequest(_CamelModel):
    wire_token: str = Field(min_length=1)

    @field_validator("wire_token")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("wireToken must not be empty")
        return value


class ValidateResponse(_CamelModel):
    valid: bool
    resource_ids: list[str] | None = None
    expires_at: str | None = None


class ReportViewResponse(_CamelModel):
    report_id: str
    file_name: str | None = None
    file_type: str | None = None
    title: str | None = None
    report_date: str | None = None
    category: str | None = None
    doctor_name: str | None = None
    clinic_name: str | None = None
    storage_url: str | None = None


class SharedReportsResponse(_CamelModel):
    resources: list[ReportViewResponse]
    expires_at: str
    attached_summary: str | None = None


def iso(value: datetime | None) -> str | None:
    return to_iso(value) if value is not None else None
