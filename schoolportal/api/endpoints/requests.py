# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document request API endpoints.

This module provides endpoints for the request lifecycle:
- GET / - List requests visible to the caller
- POST / - Submit a request (student or parent)
- PATCH /{request_id}/status - Approve or reject (staff)
- PATCH /{request_id}/document - Notify an out-of-band delivery (staff)
- POST /{request_id}/upload - Upload a document, optionally delivering it (staff)
- GET /{request_id}/download - Resolve the downloadable file
"""

import logging
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status

from schoolportal.api.dependencies import get_request_service, require_auth, require_staff
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.api.middleware.rate_limit import RATE_LIMIT_REQUESTS, limiter
from schoolportal.domains.request import RequestService
from schoolportal.models.common import OkResponse, RequestStatus
from schoolportal.models.request import (
    CreateRequestInput,
    DownloadTarget,
    ListRequestsQuery,
    NotifyDocumentInput,
    UpdateStatusInput,
    UploadedFile,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    summary="List document requests",
    description="Staff see approved and sent requests; students and parents see their own.",
)
@limiter.limit(RATE_LIMIT_REQUESTS)
async def list_requests(
    request: Request,
    scope: Annotated[Literal["admin", "personnel", "mine"] | None, Query()] = None,
    status_filter: Annotated[RequestStatus | None, Query(alias="status")] = None,
    limit: Annotated[int | None, Query(ge=1, description="Page size, clamped to the configured maximum")] = None,
    cursor: Annotated[str | None, Query(min_length=1, description="nextCursor of the previous page")] = None,
    current_user: CurrentUser = Depends(require_auth),
    service: RequestService = Depends(get_request_service),
) -> dict[str, Any]:
    query = ListRequestsQuery(scope=scope or "", status=status_filter, limit=limit, cursor=cursor)
    return await service.list_requests(current_user, query)


@router.post(
    "",
    response_model=OkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a document request",
)
@limiter.limit(RATE_LIMIT_REQUESTS)
async def create_request(
    request: Request,
    data: CreateRequestInput,
    current_user: CurrentUser = Depends(require_auth),
    service: RequestService = Depends(get_request_service),
) -> OkResponse:
    """Submit a request as a student, or for a child as a parent."""
    request_id = await service.create(current_user, data)
    return OkResponse(id=request_id, status=RequestStatus.PENDING.value)


@router.patch(
    "/{request_id}/status",
    response_model=OkResponse,
    summary="Approve or reject a request",
)
@limiter.limit(RATE_LIMIT_REQUESTS)
async def update_request_status(
    request: Request,
    request_id: str,
    data: UpdateStatusInput,
    current_user: CurrentUser = Depends(require_staff),
    service: RequestService = Depends(get_request_service),
) -> OkResponse:
    new_status = await service.update_status(current_user, request_id, data)
    logger.info("Request %s set to %s by %s", request_id, new_status.value, current_user.uid)
    return OkResponse(id=request_id, status=new_status.value)


@router.patch(
    "/{request_id}/document",
    response_model=OkResponse,
    summary="Notify that a document was delivered",
)
@limiter.limit(RATE_LIMIT_REQUESTS)
async def notify_document_sent(
    request: Request,
    request_id: str,
    data: NotifyDocumentInput,
    current_user: CurrentUser = Depends(require_staff),
    service: RequestService = Depends(get_request_service),
) -> OkResponse:
    current_status = await service.notify_document_sent(current_user, request_id, data.notes)
    return OkResponse(id=request_id, status=current_status)


@router.post(
    "/{request_id}/upload",
    summary="Upload a document for a request",
    description="The request moves to sent and the requester is notified unless notify=false.",
)
@limiter.limit(RATE_LIMIT_REQUESTS)
async def upload_request_document(
    request: Request,
    request_id: str,
    file: Annotated[UploadFile | None, File()] = None,
    notes: Annotated[str, Form(max_length=1000)] = "",
    notify: Annotated[bool, Form()] = True,
    current_user: CurrentUser = Depends(require_staff),
    service: RequestService = Depends(get_request_service),
) -> dict[str, Any]:
    """Store an uploaded document on the request.

    Args:
        request: HTTP request.
        request_id: Request identifier.
        file: Multipart file field ``file``.
        notes: Note shown to the requester.
        notify: Deliver the document now (default), or only attach it.
        current_user: Authenticated staff member.
        service: Request service.

    Returns:
        ``{"ok", "id", "status", "attachment"}``.
    """
    uploaded = None
    if file is not None:
        uploaded = UploadedFile(
            content=await file.read(),
            filename=file.filename or "document",
            mime_type=file.content_type or "application/octet-stream",
        )
    return await service.upload_document(current_user, request_id, uploaded, notes, notify)


@router.get(
    "/{request_id}/download",
    response_model=DownloadTarget,
    summary="Resolve a request's downloadable file",
)
@limiter.limit(RATE_LIMIT_REQUESTS)
async def download_request_document(
    request: Request,
    request_id: str,
    current_user: CurrentUser = Depends(require_auth),
    service: RequestService = Depends(get_request_service),
) -> DownloadTarget:
    return await service.download(current_user, request_id)
