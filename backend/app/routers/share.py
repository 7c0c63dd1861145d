"""QR report sharing — issue, validate and redeem share tokens.

A patient issues a token for reports they own; the token (and its QR
rendering) is handed to a doctor, who redeems it for the reports with
fresh download links. Invalid and expired tokens are both reported as
"not found".
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from app.config import get_settings
from app.dependencies import (
    get_access_resolver,
    get_current_user_id,
    get_document_store,
    get_share_token_service,
    require_role,
)
from app.errors import TokenInvalidError
from app.models.share import (
    ReportViewResponse,
    ShareRequest,
    ShareResponse,
    SharedReportsResponse,
    ValidateRequest,
    ValidateResponse,
    iso,
)
from app.services.access_resolver import AccessResolver
from app.services.document_store import REPORTS, DocumentStore
from app.services.qr import qr_code_data_url
from app.services.share_tokens import ShareTokenService
from app.services.token_codec import dedupe_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports/qr", tags=["share"])


@router.post("/generate", response_model=ShareResponse)
async def generate_share_token(
    body: ShareRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    documents: DocumentStore = Depends(get_document_store),
    share_tokens: ShareTokenService = Depends(get_share_token_service),
) -> ShareResponse:
    """Issue a share token and QR code for reports owned by the caller.

    The AI summary is generated after the response is sent and attached
    to the token record when ready.
    """
    settings = get_settings()
    ttl = body.expires_in if body.expires_in is not None else settings.qr_default_ttl_seconds
    if not settings.qr_min_ttl_seconds <= ttl <= settings.qr_max_ttl_seconds:
        raise HTTPException(
            status_code=422,
            detail=(
                f"expiresIn must be between {settings.qr_min_ttl_seconds} "
                f"and {settings.qr_max_ttl_seconds} seconds"
            ),
        )

    report_ids = dedupe_ids(body.resource_ids)
    for report_id in report_ids:
        report = documents.get_by_id(REPORTS, report_id)
        if report is None or report.get("user_id") != user_id:
            raise HTTPException(status_code=403, detail=f"Access denied to report {report_id}")

    issued = share_tokens.issue(report_ids, user_id, ttl)
    background_tasks.add_task(share_tokens.attach_summary, issued.wire_token, report_ids)

    return ShareResponse(
        wire_token=issued.wire_token,
        qr_code=qr_code_data_url(issued.wire_token),
        expires_at=iso(issued.expires_at),
    )


@router.post(
    "/validate",
    response_model=ValidateResponse,
    response_model_exclude_none=True,
)
async def validate_share_token(
    body: ValidateRequest,
    _user_id: str = Depends(get_current_user_id),
    share_tokens: ShareTokenService = Depends(get_share_token_service),
) -> ValidateResponse:
    """Report whether a token is currently usable and which reports it covers."""
    result = share_tokens.validate(body.wire_token)
    if not result.valid:
        return ValidateResponse(valid=False)
    return ValidateResponse(
        valid=True,
        resource_ids=list(result.resource_ids),
        expires_at=iso(result.expires_at),
    )


@router.get("/{wire_token}", response_model=SharedReportsResponse)
async def get_shared_reports(
    wire_token: str,
    _doctor_id: str = Depends(require_role("doctor")),
    resolver: AccessResolver = Depends(get_access_resolver),
) -> SharedReportsResponse:
    """Doctor access: the reports behind a share token, with download links."""
    try:
        shared = resolver.resolve(wire_token)
    except TokenInvalidError:
        raise HTTPException(status_code=404, detail="Invalid or expired QR token")

    return SharedReportsResponse(
        resources=[
            ReportViewResponse(
                report_id=r.report_id,
                file_name=r.file_name,
                file_type=r.file_type,
                title=r.title,
                report_date=r.report_date,
                category=r.category,
                doctor_name=r.doctor_name,
                clinic_name=r.clinic_name,
                storage_url=r.storage_url,
            )
            for r in shared.resources
        ],
        expires_at=iso(shared.expires_at),
        attached_summary=shared.attached_summary,
    )
