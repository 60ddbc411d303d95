from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.database import get_db
from app.models.ab_test import EventType, TestStatus, TestType
from app.models.schemas import (
    ActionResponse,
    CompleteTestRequest,
    CreateTestRequest,
    ErrorResponse,
    EventRecordedResponse,
    RecordEventRequest,
    SnapshotListResponse,
    SnapshotResponse,
    TestEnvelope,
    TestListResponse,
    TestResponse,
    TestResultsResponse,
    TestStatusEnum,
    TestTypeEnum,
    VariantEnvelope,
    VariantResponse,
)
from app.services.ab_testing import ABTestingService

settings = get_settings()

router = APIRouter()

NOT_FOUND = {404: {"model": ErrorResponse}}


@router.post("", response_model=TestEnvelope, status_code=201)
async def create_test(request: CreateTestRequest, db: AsyncSession = Depends(get_db)):
    service = ABTestingService(db)
    test = await service.create_test(request)
    return TestEnvelope(test=TestResponse.model_validate(test))


@router.get("", response_model=TestListResponse)
async def list_tests(
    status: Optional[TestStatusEnum] = Query(None, description="Filter by status"),
    test_type: Optional[TestTypeEnum] = Query(None, alias="testType"),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    service = ABTestingService(db)
    tests = await service.list_tests(
        status=TestStatus(status.value) if status else None,
        test_type=TestType(test_type.value) if test_type else None,
        limit=limit,
        offset=offset,
    )
    return TestListResponse(tests=tests)


@router.get("/{test_id}", response_model=TestEnvelope, responses=NOT_FOUND)
async def get_test(test_id: str, db: AsyncSession = Depends(get_db)):
    service = ABTestingService(db)
    test = await service.get_test(test_id)
    return TestEnvelope(test=TestResponse.model_validate(test))


@router.post("/{test_id}/start", response_model=ActionResponse, responses=NOT_FOUND)
async def start_test(test_id: str, db: AsyncSession = Depends(get_db)):
    await ABTestingService(db).start_test(test_id)
    return ActionResponse(message="Test started successfully")


@router.post("/{test_id}/pause", response_model=ActionResponse, responses=NOT_FOUND)
async def pause_test(test_id: str, db: AsyncSession = Depends(get_db)):
    await ABTestingService(db).pause_test(test_id)
    return ActionResponse(message="Test paused successfully")


@router.post("/{test_id}/complete", response_model=ActionResponse, responses=NOT_FOUND)
async def complete_test(
    test_id: str,
    request: Optional[CompleteTestRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    winning_variant_id = request.winning_variant_id if request else None
    await ABTestingService(db).complete_test(test_id, winning_variant_id)
    return ActionResponse(message="Test completed successfully")


@router.delete("/{test_id}", response_model=ActionResponse, responses=NOT_FOUND)
async def delete_test(test_id: str, db: AsyncSession = Depends(get_db)):
    await ABTestingService(db).delete_test(test_id)
    return ActionResponse(message="Test deleted successfully")


@router.post("/{test_id}/event", response_model=EventRecordedResponse, responses=NOT_FOUND)
async def record_event(
    test_id: str,
    request: RecordEventRequest,
    http_request: Request,
    db: AsyncSession = Depends(get_db),
):
    await ABTestingService(db).record_event(
        test_id=test_id,
        variant_id=request.variant_id,
        event_type=EventType(request.event_type.value),
        user_identifier=request.user_identifier,
        conversion_value=request.conversion_value,
        metadata=request.metadata,
        ip_address=http_request.client.host if http_request.client else None,
        user_agent=http_request.headers.get("user-agent"),
        referrer=http_request.headers.get("referer"),
    )
    return EventRecordedResponse()


@router.get("/{test_id}/variant", response_model=VariantEnvelope, responses=NOT_FOUND)
async def get_variant(
    test_id: str,
    user_identifier: Optional[str] = Query(None, alias="userIdentifier"),
    db: AsyncSession = Depends(get_db),
):
    service = ABTestingService(db)
    variant = await service.select_variant(test_id, user_identifier)

    if variant is None:
        return JSONResponse(
            status_code=404,
            content={
                "error": "No variant available",
                "message": "Test is not running or has no variants",
            },
        )

    return VariantEnvelope(variant=VariantResponse.model_validate(variant))


@router.get("/{test_id}/results", response_model=TestResultsResponse, responses=NOT_FOUND)
async def get_results(test_id: str, db: AsyncSession = Depends(get_db)):
    service = ABTestingService(db)
    return await service.get_results(test_id)


@router.get("/{test_id}/snapshots", response_model=SnapshotListResponse, responses=NOT_FOUND)
async def list_snapshots(test_id: str, db: AsyncSession = Depends(get_db)):
    service = ABTestingService(db)
    snapshots = await service.list_snapshots(test_id)
    return SnapshotListResponse(
        snapshots=[SnapshotResponse.model_validate(s) for s in snapshots]
    )
