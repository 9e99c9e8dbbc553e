# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Object storage API endpoints.

- POST /signature - Signed parameters for a direct browser upload
- DELETE /asset - Delete an uploaded asset (staff)
"""

from typing import Any

from fastapi import APIRouter, Depends, Request

from schoolportal.api.dependencies import (
    get_audit_trail,
    get_storage,
    require_auth,
    require_staff,
)
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.api.middleware.rate_limit import RATE_LIMIT_STORAGE, limiter
from schoolportal.infrastructure.audit import AuditActor, AuditTrail
from schoolportal.infrastructure.storage import ObjectStorage
from schoolportal.models.storage import DeleteAssetInput

router = APIRouter()


@router.post("/signature", summary="Sign a browser upload")
@limiter.limit(RATE_LIMIT_STORAGE)
async def get_upload_signature(
    request: Request,
    current_user: CurrentUser = Depends(require_auth),
    storage: ObjectStorage = Depends(get_storage),
    audit: AuditTrail = Depends(get_audit_trail),
) -> dict[str, Any]:
    params = storage.signed_upload_params()
    audit.record(
        AuditActor(current_user.uid, current_user.role.value),
        "STORAGE_SIGNATURE",
        target={"collection": "storage", "id": current_user.uid},
        meta={"folder": params.get("folder")},
    )
    return params


@router.delete("/asset", summary="Delete an asset")
@limiter.limit(RATE_LIMIT_STORAGE)
async def delete_asset(
    request: Request,
    data: DeleteAssetInput,
    current_user: CurrentUser = Depends(require_staff),
    storage: ObjectStorage = Depends(get_storage),
    audit: AuditTrail = Depends(get_audit_trail),
) -> dict[str, Any]:
    result = await storage.destroy(data.public_id, data.resource_type)
    audit.record(
        AuditActor(current_user.uid, current_user.role.value),
        "STORAGE_DELETE_ASSET",
        target={"collection": "storage", "id": data.public_id},
        meta={"resourceType": data.resource_type, "result": result.get("result")},
    )
    return {"ok": True, "result": result}
