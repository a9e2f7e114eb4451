"""
Admin Endpoints - maintenance without direct database access.

1. inspect / reset a user's conversation session (stuck users)
2. manage the vehicle and store choice lists
3. read / change the daily report window
4. circuit breaker status
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from triplog.api.dependencies.admin_auth import require_admin_api_key
from triplog.core.circuit_breaker import (
    CircuitBreaker,
    get_geocoder_circuit_breaker,
    get_line_circuit_breaker,
)
from triplog.core.exceptions import NotFoundException
from triplog.core.logging import get_logger, mask_user_id
from triplog.core.validation import label_validator
from triplog.db.database import get_db
from triplog.domain.services.reference_service import ReferenceService
from triplog.domain.services.session_store import SessionStore

logger = get_logger(__name__)

router = APIRouter()

_AUTH_RESPONSES = {
    401: {"description": "Missing API key"},
    403: {"description": "Invalid API key or admin API disabled"},
}


# ─── Pydantic models ────────────────────────────────────────────────────────

class SessionResponse(BaseModel):
    """A user's position in the conversation"""
    user_id: str
    current_state: str
    draft: dict
    selection: dict
    last_updated_at: datetime | None


class ReferenceItemResponse(BaseModel):
    label: str
    value: str


class VehicleCreate(BaseModel):
    vehicle_number: str = Field(..., max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    sort_order: int = 0

    @field_validator("vehicle_number")
    @classmethod
    def clean_vehicle_number(cls, v: str) -> str:
        return label_validator(v)


class StoreCreate(BaseModel):
    store_name: str = Field(..., max_length=100)
    address: Optional[str] = Field(None, max_length=300)
    sort_order: int = 0

    @field_validator("store_name")
    @classmethod
    def clean_store_name(cls, v: str) -> str:
        return label_validator(v)


class ReportWindowPayload(BaseModel):
    """Report window in hours relative to the report date (28 = 04:00 next day)"""
    start_hour: int = Field(..., ge=0, le=23)
    end_hour: int = Field(..., ge=0, le=47)


class CircuitBreakerStatusResponse(BaseModel):
    service: str
    state: str = Field(description="closed | open | half_open")
    failure_count: int
    retry_after_seconds: float


# ─── 1. Sessions ────────────────────────────────────────────────────────────

@router.get(
    "/sessions/{user_id}",
    response_model=SessionResponse,
    summary="Conversation session of a user",
    responses={404: {"description": "No session for this user"}, **_AUTH_RESPONSES},
)
async def get_session(
    user_id: str,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    session = await SessionStore(db).get(user_id)
    if session is None:
        raise NotFoundException("session", user_id)
    return SessionResponse(
        user_id=session.user_id,
        current_state=session.state,
        draft=session.draft,
        selection=session.selection,
        last_updated_at=session.last_updated_at,
    )


@router.delete(
    "/sessions/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset a user's conversation",
    description="Deletes the session; the user's next message starts from idle.",
    responses={404: {"description": "No session for this user"}, **_AUTH_RESPONSES},
)
async def delete_session(
    user_id: str,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> None:
    deleted = await SessionStore(db).delete(user_id)
    if not deleted:
        raise NotFoundException("session", user_id)
    await db.commit()
    logger.info("Conversation session reset by admin", extra_data={"user_id": mask_user_id(user_id)})


# ─── 2. Reference lists ─────────────────────────────────────────────────────

@router.get(
    "/vehicles",
    response_model=list[ReferenceItemResponse],
    summary="Vehicle choices",
    responses=_AUTH_RESPONSES,
)
async def list_vehicles(
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> list[ReferenceItemResponse]:
    items = await ReferenceService(db).list_vehicles()
    return [ReferenceItemResponse(label=i.label, value=i.value) for i in items]


@router.post(
    "/vehicles",
    response_model=ReferenceItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a vehicle",
    responses={409: {"description": "Vehicle number already exists"}, **_AUTH_RESPONSES},
)
async def create_vehicle(
    payload: VehicleCreate,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> ReferenceItemResponse:
    vehicle = await ReferenceService(db).add_vehicle(
        payload.vehicle_number, payload.description, payload.sort_order
    )
    return ReferenceItemResponse(label=vehicle.vehicle_number, value=vehicle.vehicle_number)


@router.get(
    "/stores",
    response_model=list[ReferenceItemResponse],
    summary="Store choices",
    responses=_AUTH_RESPONSES,
)
async def list_stores(
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> list[ReferenceItemResponse]:
    items = await ReferenceService(db).list_stores()
    return [ReferenceItemResponse(label=i.label, value=i.value) for i in items]


@router.post(
    "/stores",
    response_model=ReferenceItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a store",
    responses={409: {"description": "Store already exists"}, **_AUTH_RESPONSES},
)
async def create_store(
    payload: StoreCreate,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> ReferenceItemResponse:
    store = await ReferenceService(db).add_store(payload.store_name, payload.address, payload.sort_order)
    return ReferenceItemResponse(label=store.store_name, value=store.address or store.store_name)


# ─── 3. Report window ───────────────────────────────────────────────────────

@router.get(
    "/report-window",
    response_model=ReportWindowPayload,
    summary="Daily report window",
    responses=_AUTH_RESPONSES,
)
async def get_report_window(
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> ReportWindowPayload:
    window = await ReferenceService(db).get_report_window()
    return ReportWindowPayload(start_hour=window.start_hour, end_hour=window.end_hour)


@router.put(
    "/report-window",
    response_model=ReportWindowPayload,
    summary="Change the daily report window",
    responses={400: {"description": "end_hour equals start_hour"}, **_AUTH_RESPONSES},
)
async def put_report_window(
    payload: ReportWindowPayload,
    _: None = Depends(require_admin_api_key),
    db: AsyncSession = Depends(get_db),
) -> ReportWindowPayload:
    window = await ReferenceService(db).set_report_window(payload.start_hour, payload.end_hour)
    return ReportWindowPayload(start_hour=window.start_hour, end_hour=window.end_hour)


# ─── 4. Circuit breakers ────────────────────────────────────────────────────

def _cb_to_response(cb: CircuitBreaker) -> CircuitBreakerStatusResponse:
    return CircuitBreakerStatusResponse(
        service=cb.service_name,
        state=cb.state.value,
        failure_count=cb._state.failure_count,
        retry_after_seconds=round(cb.get_retry_after(), 1),
    )


@router.get(
    "/circuit-breakers",
    response_model=list[CircuitBreakerStatusResponse],
    summary="Circuit breaker status (LINE, geocoder)",
    responses=_AUTH_RESPONSES,
)
async def get_circuit_breaker_status(
    _: None = Depends(require_admin_api_key),
) -> list[CircuitBreakerStatusResponse]:
    breakers = [get_line_circuit_breaker(), get_geocoder_circuit_breaker()]
    return [_cb_to_response(cb) for cb in breakers]
