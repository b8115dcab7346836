"""
/api/conversions - lead/deal conversion endpoints.

POST /conversions/leads/bulk          bulk lead -> deal
POST /conversions/leads/{lead_id}     lead -> deal
POST /conversions/deals/{deal_id}     deal -> lead
GET  /conversions/validate            dry-run validation
GET  /conversions/history             history for an entity (either side)
GET  /conversions/history/{id}        one history entry
"""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from api.base import success_response, error_response, ErrorCodes
from auth.exceptions import PermissionDeniedError
from core.conversion import ConversionEngine
from core.models import (
    ConversionIssueCode,
    ConversionResult,
    DealConversionOptions,
    EntityType,
    LeadConversionOptions,
)
from utils.user_context import get_current_user_id, has_permission

# Blocking outcome -> (HTTP status, API error code)
_FAILURE_STATUS = {
    ConversionIssueCode.NOT_FOUND: (404, ErrorCodes.NOT_FOUND),
    ConversionIssueCode.ALREADY_CONVERTED: (409, ErrorCodes.ALREADY_CONVERTED),
    ConversionIssueCode.INSUFFICIENT_PERMISSION: (403, ErrorCodes.FORBIDDEN),
    ConversionIssueCode.TERMINAL_STATE: (409, ErrorCodes.TERMINAL_STATE),
    ConversionIssueCode.IDENTITY_CONFLICT: (400, ErrorCodes.INVALID_REQUEST),
    ConversionIssueCode.SYSTEM_ERROR: (500, ErrorCodes.CONVERSION_FAILED),
}


class BulkConvertRequest(BaseModel):
    lead_ids: list[UUID] = Field(..., min_length=1, max_length=500)
    default_options: LeadConversionOptions | None = None
    per_lead_overrides: dict[UUID, LeadConversionOptions] | None = None


def require_conversion_permission(entity_type: EntityType) -> None:
    """
    Gate for converting an entity of entity_type.

    Raises:
        PermissionDeniedError: If the user holds none of
            <type>:convert, <type>:update_any, <type>:update_own
    """
    required = (
        f"{entity_type.value}:convert",
        f"{entity_type.value}:update_any",
        f"{entity_type.value}:update_own",
    )
    if not has_permission(*required):
        raise PermissionDeniedError(required)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _conversion_response(request: Request, result: ConversionResult):
    payload = result.model_dump(mode="json")
    if result.success:
        return success_response(payload, request_id=_request_id(request)).model_dump(mode="json")

    status_code, code = _FAILURE_STATUS.get(
        result.error_code, (422, ErrorCodes.CONVERSION_BLOCKED)
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code,
            result.errors[0] if result.errors else result.message,
            details=result.errors,
            request_id=_request_id(request),
            data=payload,
        ).model_dump(mode="json"),
    )


def create_conversions_router(engine: ConversionEngine) -> APIRouter:
    router = APIRouter()

    # Registered before /leads/{lead_id} so "bulk" is not parsed as an id
    @router.post("/conversions/leads/bulk")
    def bulk_convert_leads(request: Request, body: BulkConvertRequest):
        require_conversion_permission(EntityType.LEAD)
        result = engine.bulk.bulk_convert_leads(
            body.lead_ids,
            body.default_options,
            body.per_lead_overrides,
            get_current_user_id(),
        )
        return success_response(
            result.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    @router.post("/conversions/leads/{lead_id}")
    def convert_lead(request: Request, lead_id: UUID, body: LeadConversionOptions | None = None):
        require_conversion_permission(EntityType.LEAD)
        result = engine.forward.convert_lead_to_deal(lead_id, body, get_current_user_id())
        return _conversion_response(request, result)

    @router.post("/conversions/deals/{deal_id}")
    def convert_deal(request: Request, deal_id: UUID, body: DealConversionOptions | None = None):
        require_conversion_permission(EntityType.DEAL)
        result = engine.backward.convert_deal_to_lead(deal_id, body, get_current_user_id())
        return _conversion_response(request, result)

    @router.get("/conversions/validate")
    def validate_conversion(
        request: Request,
        source_type: EntityType = Query(...),
        source_id: UUID = Query(...),
        target_type: EntityType = Query(...),
    ):
        result = engine.validator.validate(source_type, source_id, target_type, get_current_user_id())
        data = result.model_dump(mode="json", exclude={"source_entity"})
        data["source_entity"] = (
            result.source_entity.model_dump(mode="json") if result.source_entity is not None else None
        )
        return success_response(data, request_id=_request_id(request)).model_dump(mode="json")

    @router.get("/conversions/history")
    def conversion_history(
        request: Request,
        entity_type: EntityType = Query(...),
        entity_id: UUID = Query(...),
    ):
        entries = engine.history.query(entity_type, entity_id)
        return success_response(
            [e.model_dump(mode="json") for e in entries], request_id=_request_id(request)
        ).model_dump(mode="json")

    @router.get("/conversions/history/{history_id}")
    def conversion_history_entry(request: Request, history_id: UUID):
        entry = engine.history.get_by_id(history_id)
        if entry is None:
            raise ValueError(f"Conversion history entry {history_id} not found")
        return success_response(
            entry.model_dump(mode="json"), request_id=_request_id(request)
        ).model_dump(mode="json")

    return router
