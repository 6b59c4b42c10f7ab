"""
VIP tagging routes.

    1. POST /vip/update-status - recompute is_vip for a batch of emails
    2. POST /vip/addresses/apply - propagate one VIP add/remove to stored emails
    3. POST /vip/process-tenant - mark emails from every active VIP of a tenant

Batch endpoints never fail because of a single email; only a malformed
top-level body is reported as an error.
"""

from dataclasses import asdict
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from mailsentry.auth.verify import auth_dependency
from mailsentry.features.vip.domain import VipBatchResult, VipEmailRecord, VipUpdateOutcome
from mailsentry.features.vip.services import VipStatusUpdater, vip_status_updater
from mailsentry.infrastructure.observability.logging import get_logger

router = APIRouter(prefix="/vip", tags=["vip"])
logger = get_logger(__name__)


class VipEmailPayload(BaseModel):
    """One email of an update-status batch."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    tenant_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("tenant_id", "tenantId")
    )
    sender_email: str = Field(
        ..., validation_alias=AliasChoices("sender_email", "senderEmail", "sender")
    )
    mailbox_id: str | None = Field(
        None, validation_alias=AliasChoices("mailbox_id", "mailboxId")
    )

    def to_domain(self) -> VipEmailRecord:
        return VipEmailRecord(
            id=self.id,
            tenant_id=self.tenant_id,
            sender_email=self.sender_email,
            mailbox_id=self.mailbox_id,
        )


class VipAddressChangeRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    email_address: str = Field(..., min_length=3)
    action: Literal["add", "remove"]
    mailbox_id: str | None = None


class VipProcessTenantRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    mailbox_id: str | None = None


class VipUpdateStatusResponse(BaseModel):
    success: bool
    message: str
    processed: int
    updated: int
    failed: int
    results: list[dict[str, Any]]


class VipAddressChangeResponse(BaseModel):
    success: bool
    updated: int


class VipProcessTenantResponse(BaseModel):
    success: bool
    vip_addresses: int
    updated: int
    failed: int


def get_vip_status_updater() -> VipStatusUpdater:
    return vip_status_updater


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _invalid_item_outcome(item: Any) -> VipUpdateOutcome:
    email_id = item.get("id") if isinstance(item, dict) else None
    return VipUpdateOutcome(
        email_id=str(email_id) if email_id is not None else None,
        success=False,
        error="Invalid email payload",
    )


@router.post("/update-status", response_model=VipUpdateStatusResponse)
async def update_vip_status(
    payload: dict[str, Any] | None = Body(None),
    updater: VipStatusUpdater = Depends(get_vip_status_updater),
    claims: dict = Depends(auth_dependency),
):
    """
    Recompute the VIP flag for each email in the batch.

    Raises:
        500: `emails` is missing or not an array
    """
    emails = (payload or {}).get("emails")
    if not isinstance(emails, list):
        logger.error("VIP update called without an email array", caller=claims.get("sub"))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "emails must be an array")

    records: list[VipEmailRecord] = []
    rejected: list[VipUpdateOutcome] = []
    for item in emails:
        try:
            records.append(VipEmailPayload.model_validate(item).to_domain())
        except ValidationError:
            logger.warning("Skipping invalid email in VIP batch")
            rejected.append(_invalid_item_outcome(item))

    batch = await updater.update_vip_status(records)
    result = VipBatchResult.from_outcomes(rejected + batch.outcomes)

    return VipUpdateStatusResponse(
        success=True,
        message="VIP status updated",
        processed=result.processed,
        updated=result.updated,
        failed=result.failed,
        results=[asdict(outcome) for outcome in result.outcomes],
    )


@router.post("/addresses/apply", response_model=VipAddressChangeResponse)
async def apply_vip_address_change(
    payload: dict[str, Any] | None = Body(None),
    updater: VipStatusUpdater = Depends(get_vip_status_updater),
    claims: dict = Depends(auth_dependency),
):
    """
    Set or clear the VIP flag on every stored email from one address.

    Raises:
        400: missing tenant, address or an action other than add/remove
        500: the bulk update failed
    """
    try:
        request = VipAddressChangeRequest.model_validate(payload or {})
    except ValidationError as e:
        logger.warning("Invalid VIP address change", error_count=e.error_count())
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Missing required fields: tenant_id, email_address and action (add|remove)",
        )

    try:
        updated = await updater.apply_vip_change(
            request.tenant_id,
            request.email_address,
            request.action == "add",
            mailbox_id=request.mailbox_id,
        )
    except ValueError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except Exception as e:
        logger.error(
            "VIP address change failed",
            tenant_id=request.tenant_id,
            action=request.action,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "VIP update failed")

    return VipAddressChangeResponse(success=True, updated=updated)


@router.post("/process-tenant", response_model=VipProcessTenantResponse)
async def process_tenant_vips(
    payload: dict[str, Any] | None = Body(None),
    updater: VipStatusUpdater = Depends(get_vip_status_updater),
    claims: dict = Depends(auth_dependency),
):
    """Apply every active VIP address of the tenant to its stored emails."""
    try:
        request = VipProcessTenantRequest.model_validate(payload or {})
    except ValidationError:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required field: tenant_id")

    try:
        result = await updater.process_tenant(request.tenant_id, mailbox_id=request.mailbox_id)
    except Exception as e:
        logger.error(
            "Tenant VIP processing failed",
            tenant_id=request.tenant_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "VIP processing failed")

    return VipProcessTenantResponse(
        success=True,
        vip_addresses=result.vip_addresses,
        updated=result.updated,
        failed=result.failed,
    )
