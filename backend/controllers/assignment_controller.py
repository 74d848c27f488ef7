"""HTTP controller for lecturer auto-assignment."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_assignment_service, require_admin
from backend.services.assignment_service import (
    AssignmentInProgressError,
    AutoAssignmentService,
    NoAvailableLecturersError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["assignment"])


class AutoAssignResponse(BaseModel):
    """Completion summary; run details are omitted when there was nothing to do."""

    message: str
    assigned: int = Field(ge=0)
    total_unassigned: int | None = Field(default=None, ge=0)
    confirmed: int | None = Field(default=None, ge=0)
    skipped_registration_ids: list[str] | None = None
    failed_registration_ids: list[str] | None = None


class AssignmentErrorResponse(BaseModel):
    error: str
    assigned: int = 0


@router.post(
    "/periods/{period_id}/auto-assign",
    response_model=AutoAssignResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": AssignmentErrorResponse},
        status.HTTP_409_CONFLICT: {"model": AssignmentErrorResponse},
    },
)
async def auto_assign(
    period_id: str,
    service: AutoAssignmentService = Depends(get_assignment_service),
):
    """Assign every registered, unassigned student of a period to a lecturer."""
    try:
        summary = await run_in_threadpool(service.auto_assign, period_id)
    except NoAvailableLecturersError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=AssignmentErrorResponse(error=str(exc)).model_dump(),
        )
    except AssignmentInProgressError as exc:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=AssignmentErrorResponse(error=str(exc)).model_dump(),
        )
    except Exception:
        logger.exception("Error auto-assigning lecturers | period_id=%s", period_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to auto-assign lecturers"},
        )

    if summary.status == "nothing_to_do":
        return AutoAssignResponse(message=summary.message, assigned=summary.assigned)
    return AutoAssignResponse(
        message=summary.message,
        assigned=summary.assigned,
        total_unassigned=summary.total_unassigned,
        confirmed=summary.confirmed,
        skipped_registration_ids=summary.skipped_registration_ids,
        failed_registration_ids=summary.failed_registration_ids,
    )
