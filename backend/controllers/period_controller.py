"""Controller layer for login, periods, lecturer capacity and registrations."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from backend.controllers.dependencies import (
    bearer_scheme,
    get_auth_service,
    get_period_service,
    require_admin,
    require_student,
)
from backend.domain.models import CurrentUser
from backend.services.auth_service import AuthService, InvalidCredentialsError
from backend.services.period_service import (
    DuplicateRegistrationError,
    PeriodNotFoundError,
    PeriodService,
    PeriodValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["periods"])


class LoginRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PeriodCreateRequest(BaseModel):
    semester: str = Field(min_length=1)
    academic_year: str = Field(pattern=r"^\d{4}-\d{4}$")
    registration_start: date
    registration_end: date
    lecturer_selection_end: date
    start_date: date
    end_date: date
    is_active: bool = False


class PeriodUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    semester: str | None = Field(default=None, min_length=1)
    academic_year: str | None = Field(default=None, pattern=r"^\d{4}-\d{4}$")
    registration_start: date | None = None
    registration_end: date | None = None
    lecturer_selection_end: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class PeriodResponse(BaseModel):
    id: str
    semester: str
    academic_year: str
    registration_start: date
    registration_end: date
    lecturer_selection_end: date
    start_date: date
    end_date: date
    is_active: bool


class AddLecturersRequest(BaseModel):
    lecturer_ids: list[str]
    max_students: int | None = Field(default=None, gt=0)


class LecturerAvailabilityResponse(BaseModel):
    period_id: str
    lecturer_id: str
    lecturer_name: str
    lecturer_department: str | None
    max_students: int = Field(gt=0)
    assigned_count: int = Field(ge=0)
    slots_remaining: int


class RegistrationResponse(BaseModel):
    id: str
    period_id: str
    status: str


def _period_response(period) -> PeriodResponse:
    return PeriodResponse(
        id=period.period_id,
        semester=period.semester,
        academic_year=period.academic_year,
        registration_start=period.registration_start,
        registration_end=period.registration_end,
        lecturer_selection_end=period.lecturer_selection_end,
        start_date=period.start_date,
        end_date=period.end_date,
        is_active=period.is_active,
    )


def _availability_response(row) -> LecturerAvailabilityResponse:
    return LecturerAvailabilityResponse(
        period_id=row.period_id,
        lecturer_id=row.lecturer_id,
        lecturer_name=row.lecturer_name,
        lecturer_department=row.lecturer_department,
        max_students=row.max_students,
        assigned_count=row.assigned_count,
        slots_remaining=row.slots_remaining,
    )


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        bearer = auth_service.login(payload.email, payload.password)
        return LoginResponse(access_token=bearer)
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if credentials is not None:
        auth_service.logout(credentials.credentials)


@router.get(
    "/periods",
    response_model=list[PeriodResponse],
    dependencies=[Depends(require_admin)],
)
async def list_periods(
    service: PeriodService = Depends(get_period_service),
) -> list[PeriodResponse]:
    return [_period_response(period) for period in service.list_periods()]


@router.post(
    "/periods",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_period(
    payload: PeriodCreateRequest,
    service: PeriodService = Depends(get_period_service),
) -> PeriodResponse:
    try:
        period = service.create_period(
            semester=payload.semester,
            academic_year=payload.academic_year,
            registration_start=payload.registration_start.isoformat(),
            registration_end=payload.registration_end.isoformat(),
            lecturer_selection_end=payload.lecturer_selection_end.isoformat(),
            start_date=payload.start_date.isoformat(),
            end_date=payload.end_date.isoformat(),
            is_active=payload.is_active,
        )
        return _period_response(period)
    except PeriodValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected period creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create period",
        ) from exc


@router.put(
    "/periods/{period_id}",
    response_model=PeriodResponse,
    dependencies=[Depends(require_admin)],
)
async def update_period(
    period_id: str,
    payload: PeriodUpdateRequest,
    service: PeriodService = Depends(get_period_service),
) -> PeriodResponse:
    changes = {
        name: value.isoformat() if isinstance(value, date) else value
        for name, value in payload.model_dump(exclude_none=True).items()
    }
    try:
        period = service.update_period(period_id, **changes)
    except PeriodValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PeriodNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return _period_response(period)


@router.delete(
    "/periods/{period_id}",
    dependencies=[Depends(require_admin)],
)
async def delete_period(
    period_id: str,
    service: PeriodService = Depends(get_period_service),
) -> dict[str, bool]:
    try:
        service.delete_period(period_id)
    except PeriodNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return {"success": True}


@router.get(
    "/periods/{period_id}/lecturers",
    response_model=list[LecturerAvailabilityResponse],
    dependencies=[Depends(require_admin)],
)
async def list_period_lecturers(
    period_id: str,
    service: PeriodService = Depends(get_period_service),
) -> list[LecturerAvailabilityResponse]:
    return [_availability_response(row) for row in service.list_period_lecturers(period_id)]


@router.post(
    "/periods/{period_id}/lecturers",
    response_model=list[LecturerAvailabilityResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def add_period_lecturers(
    period_id: str,
    payload: AddLecturersRequest,
    service: PeriodService = Depends(get_period_service),
) -> list[LecturerAvailabilityResponse]:
    try:
        rows = service.add_lecturers(
            period_id,
            payload.lecturer_ids,
            max_students=payload.max_students,
        )
        return [_availability_response(row) for row in rows]
    except PeriodValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except PeriodNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.delete(
    "/periods/{period_id}/lecturers",
    dependencies=[Depends(require_admin)],
)
async def remove_period_lecturer(
    period_id: str,
    lecturer_id: str | None = Query(default=None),
    service: PeriodService = Depends(get_period_service),
) -> dict[str, bool]:
    if not lecturer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="lecturer_id is required",
        )
    removed = service.remove_lecturer(period_id, lecturer_id)
    return {"success": removed}


@router.post(
    "/periods/{period_id}/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_for_period(
    period_id: str,
    user: CurrentUser = Depends(require_student),
    service: PeriodService = Depends(get_period_service),
) -> RegistrationResponse:
    try:
        registration = service.register_student(period_id, user.user_id)
    except PeriodNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except DuplicateRegistrationError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    return RegistrationResponse(
        id=registration.registration_id,
        period_id=registration.period_id,
        status=registration.status,
    )


@router.get(
    "/periods/{period_id}/available-lecturers",
    response_model=list[LecturerAvailabilityResponse],
)
async def available_lecturers(
    period_id: str,
    user: CurrentUser = Depends(require_student),
    service: PeriodService = Depends(get_period_service),
) -> list[LecturerAvailabilityResponse]:
    rows = service.available_lecturers_for(period_id, user.department)
    return [_availability_response(row) for row in rows]
