"""
Financial responsibilities (budget envelopes) router.

Mounts under ``/api/responsibilities`` (prefix set in ``main.py``).

All endpoints require a valid JWT; every write requires the ``MANAGER``
role.  Business logic lives in ``BudgetEngine``; this module only maps
HTTP to engine calls and engine results back to HTTP.

Endpoints
---------
GET    /                — List envelopes ordered by name.
POST   /                — Create an envelope (MANAGER).
POST   /reallocate      — Move budget between two envelopes (MANAGER).
GET    /{id}            — One envelope.
PUT    /{id}            — Partial update (MANAGER).
DELETE /{id}            — Soft delete (MANAGER).
GET    /{id}/summary    — Budget, consumption, remaining, usage %.
GET    /{id}/history    — History lines with their parsed fields.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path
from fastapi.responses import JSONResponse

from app.dependencies import actor_from, get_budget_engine
from app.models.user import User
from app.schemas.common import ErrorResponse, MessageResponse
from app.schemas.responsibility import (
    EnvelopeSummaryResponse,
    HistoryEntryResponse,
    ReallocateRequest,
    ReallocateResponse,
    ResponsibilityCreate,
    ResponsibilityResponse,
    ResponsibilityUpdate,
)
from app.services.audit_history import parse_history_line
from app.services.auth_service import get_current_user, require_role
from app.services.budget_engine import BudgetEngine, ReallocationFailure

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Responsibilities"])

_FAILURE_STATUS: dict[ReallocationFailure, int] = {
    ReallocationFailure.SAME_ENVELOPE: 400,
    ReallocationFailure.NON_POSITIVE_AMOUNT: 400,
    ReallocationFailure.INSUFFICIENT_FUNDS: 400,
    ReallocationFailure.NOT_FOUND: 404,
}


# ---------------------------------------------------------------------------
# GET / and POST /
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[ResponsibilityResponse],
    summary="List financial responsibilities",
)
def list_responsibilities(
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[ResponsibilityResponse]:
    logger.debug("GET /responsibilities")
    return [ResponsibilityResponse.from_record(r) for r in engine.list_responsibilities()]


@router.post(
    "",
    response_model=ResponsibilityResponse,
    summary="Create a financial responsibility",
    responses={
        404: {"model": ErrorResponse, "description": "Assignee user or group not found."},
        422: {"model": ErrorResponse, "description": "Allocations do not add up to the budget."},
    },
)
def create_responsibility(
    body: ResponsibilityCreate,
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> ResponsibilityResponse:
    logger.info("POST /responsibilities name=%s by user=%s", body.name, current_user.id)
    record = engine.create_responsibility(body.to_draft(), current_user.name)
    return ResponsibilityResponse.from_record(record)


# ---------------------------------------------------------------------------
# POST /reallocate
# ---------------------------------------------------------------------------


@router.post(
    "/reallocate",
    response_model=ReallocateResponse,
    summary="Reallocate budget between two responsibilities",
    description=(
        "Atomically moves ``amount`` from ``fromId`` to ``toId``; the total "
        "budget across both envelopes is unchanged."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Same envelope, non-positive amount or insufficient funds."},
        404: {"model": ErrorResponse, "description": "One of the envelopes does not exist."},
    },
)
def reallocate_budget(
    body: ReallocateRequest,
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
):
    logger.info(
        "POST /responsibilities/reallocate from=%d to=%d amount=%s by user=%s",
        body.from_id, body.to_id, body.amount, current_user.id,
    )
    result = engine.reallocate_budget(
        body.from_id,
        body.to_id,
        body.amount,
        current_user.name,
        actor=actor_from(current_user),
    )
    if not result.success:
        return JSONResponse(
            status_code=_FAILURE_STATUS[result.reason],
            content={"detail": result.message, "code": result.reason.value, "success": False},
        )
    return ReallocateResponse(
        success=True,
        updated=[ResponsibilityResponse.from_record(r) for r in result.updated],
    )


# ---------------------------------------------------------------------------
# /{id}
# ---------------------------------------------------------------------------


@router.get(
    "/{responsibility_id}",
    response_model=ResponsibilityResponse,
    summary="Get a financial responsibility",
    responses={404: {"model": ErrorResponse}},
)
def get_responsibility(
    responsibility_id: Annotated[int, Path(ge=1)],
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> ResponsibilityResponse:
    return ResponsibilityResponse.from_record(engine.get_responsibility(responsibility_id))


@router.put(
    "/{responsibility_id}",
    response_model=ResponsibilityResponse,
    summary="Update a financial responsibility",
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def update_responsibility(
    body: ResponsibilityUpdate,
    responsibility_id: Annotated[int, Path(ge=1)],
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> ResponsibilityResponse:
    logger.info("PUT /responsibilities/%d by user=%s", responsibility_id, current_user.id)
    record = engine.update_responsibility(
        responsibility_id, body.to_changes(), current_user.name
    )
    return ResponsibilityResponse.from_record(record)


@router.delete(
    "/{responsibility_id}",
    response_model=MessageResponse,
    summary="Delete a financial responsibility",
    responses={404: {"model": ErrorResponse}},
)
def delete_responsibility(
    responsibility_id: Annotated[int, Path(ge=1)],
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    current_user: Annotated[User, Depends(require_role("MANAGER"))],
) -> MessageResponse:
    logger.info("DELETE /responsibilities/%d by user=%s", responsibility_id, current_user.id)
    engine.delete_responsibility(responsibility_id, actor=actor_from(current_user))
    return MessageResponse(message="Responsibility deleted")


@router.get(
    "/{responsibility_id}/summary",
    response_model=EnvelopeSummaryResponse,
    summary="Budget consumption summary",
    responses={404: {"model": ErrorResponse}},
)
def get_summary(
    responsibility_id: Annotated[int, Path(ge=1)],
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> EnvelopeSummaryResponse:
    return EnvelopeSummaryResponse.from_summary(engine.envelope_summary(responsibility_id))


@router.get(
    "/{responsibility_id}/history",
    response_model=list[HistoryEntryResponse],
    summary="Audit history of a financial responsibility",
    responses={404: {"model": ErrorResponse}},
)
def get_history(
    responsibility_id: Annotated[int, Path(ge=1)],
    engine: Annotated[BudgetEngine, Depends(get_budget_engine)],
    _current_user: Annotated[User, Depends(get_current_user)],
) -> list[HistoryEntryResponse]:
    record = engine.get_responsibility(responsibility_id)
    return [HistoryEntryResponse.from_entry(parse_history_line(line)) for line in record.history]
