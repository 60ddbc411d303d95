import random
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.ab_test import (
    ABTest,
    ABTestEvent,
    ABTestResult,
    ABTestVariant,
    EventType,
    TestStatus,
    TestType,
    VariantType,
)
from app.models.schemas import (
    CreateTestRequest,
    SignificanceResponse,
    TestResponse,
    TestResultsResponse,
    TestSummaryResponse,
    VariantResultResponse,
)
from app.services.ab_testing.allocator import draw_traffic_point, pick_weighted_variant
from app.services.ab_testing.exceptions import (
    StorageError,
    TestNotFoundError,
    VariantNotFoundError,
)
from app.services.ab_testing.stats import (
    VariantCounts,
    calculate_average_order_value,
    calculate_conversion_rate,
    score_variants,
)

logger = structlog.get_logger(__name__)


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class ABTestingService:
    def __init__(self, db: AsyncSession, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng

    async def _fail(self, operation: str, exc: SQLAlchemyError, **context) -> StorageError:
        await self.db.rollback()
        logger.error(operation, error=str(exc), **context)
        return StorageError(operation, str(exc))

    # Store

    async def create_test(self, request: CreateTestRequest) -> ABTest:
        test_id = generate_id("test")

        test = ABTest(
            id=test_id,
            test_name=request.test_name,
            test_type=TestType(request.test_type.value),
            status=TestStatus.DRAFT,
            statistical_confidence=0.0,
        )
        for variant_request in request.variants:
            test.variants.append(
                ABTestVariant(
                    id=generate_id("variant"),
                    variant_name=variant_request.variant_name,
                    variant_type=VariantType(variant_request.variant_type.value),
                    traffic_percentage=variant_request.traffic_percentage,
                    landing_page_id=variant_request.landing_page_id,
                    email_subject=variant_request.email_subject,
                    email_content=variant_request.email_content,
                    impressions=0,
                    conversions=0,
                    conversion_rate=0.0,
                    revenue_generated=0.0,
                )
            )

        try:
            self.db.add(test)
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail("ab_test_create_failed", e, test_name=request.test_name) from e

        logger.info(
            "ab_test_created",
            test_id=test_id,
            test_name=request.test_name,
            variant_count=len(request.variants),
        )

        return await self.get_test(test_id)

    async def get_test(self, test_id: str) -> ABTest:
        try:
            result = await self.db.execute(
                select(ABTest)
                .options(selectinload(ABTest.variants))
                .where(ABTest.id == test_id)
                .execution_options(populate_existing=True)
            )
            test = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise await self._fail("ab_test_get_failed", e, test_id=test_id) from e

        if test is None:
            raise TestNotFoundError(test_id)

        return test

    async def list_tests(
        self,
        status: Optional[TestStatus] = None,
        test_type: Optional[TestType] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[TestSummaryResponse]:
        query = (
            select(
                ABTest,
                func.count(func.distinct(ABTestVariant.id)).label("variant_count"),
                func.coalesce(func.sum(ABTestVariant.impressions), 0).label("total_impressions"),
                func.coalesce(func.sum(ABTestVariant.conversions), 0).label("total_conversions"),
                func.avg(ABTestVariant.conversion_rate).label("avg_conversion_rate"),
            )
            .outerjoin(ABTestVariant, ABTestVariant.test_id == ABTest.id)
            .group_by(ABTest.id)
            .order_by(ABTest.created_at.desc(), ABTest.id)
        )

        if status:
            query = query.where(ABTest.status == status)
        if test_type:
            query = query.where(ABTest.test_type == test_type)
        if limit:
            query = query.limit(limit).offset(offset)

        try:
            result = await self.db.execute(query)
            rows = result.all()
        except SQLAlchemyError as e:
            raise await self._fail("ab_test_list_failed", e) from e

        summaries = []
        for row in rows:
            test = row[0]
            summaries.append(
                TestSummaryResponse(
                    id=test.id,
                    test_name=test.test_name,
                    test_type=test.test_type.value,
                    status=test.status.value,
                    start_date=test.start_date,
                    end_date=test.end_date,
                    winning_variant_id=test.winning_variant_id,
                    statistical_confidence=test.statistical_confidence,
                    created_at=test.created_at,
                    variant_count=row.variant_count,
                    total_impressions=row.total_impressions,
                    total_conversions=row.total_conversions,
                    avg_conversion_rate=row.avg_conversion_rate,
                )
            )
        return summaries

    async def _set_status(self, test_id: str, operation: str, **values) -> None:
        try:
            result = await self.db.execute(
                update(ABTest)
                .where(ABTest.id == test_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                raise TestNotFoundError(test_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail(f"{operation}_failed", e, test_id=test_id) from e

    async def start_test(self, test_id: str) -> None:
        await self._set_status(
            test_id,
            "ab_test_start",
            status=TestStatus.RUNNING,
            start_date=datetime.now(timezone.utc),
        )
        logger.info("ab_test_started", test_id=test_id)

    async def pause_test(self, test_id: str) -> None:
        await self._set_status(test_id, "ab_test_pause", status=TestStatus.PAUSED)
        logger.info("ab_test_paused", test_id=test_id)

    async def complete_test(self, test_id: str, winning_variant_id: Optional[str] = None) -> None:
        winning_variant_id = winning_variant_id or None
        if winning_variant_id:
            test = await self.get_test(test_id)
            if winning_variant_id not in {v.id for v in test.variants}:
                raise VariantNotFoundError(winning_variant_id, test_id)

        await self._set_status(
            test_id,
            "ab_test_complete",
            status=TestStatus.COMPLETED,
            end_date=datetime.now(timezone.utc),
            winning_variant_id=winning_variant_id,
        )
        logger.info("ab_test_completed", test_id=test_id, winning_variant_id=winning_variant_id)

    async def delete_test(self, test_id: str) -> None:
        test = await self.get_test(test_id)

        try:
            await self.db.delete(test)
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail("ab_test_delete_failed", e, test_id=test_id) from e

        logger.info("ab_test_deleted", test_id=test_id)

    # Event recorder

    async def record_event(
        self,
        test_id: str,
        variant_id: str,
        event_type: EventType,
        user_identifier: Optional[str] = None,
        conversion_value: Optional[float] = None,
        metadata: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> None:
        test = await self.get_test(test_id)
        if variant_id not in {v.id for v in test.variants}:
            raise VariantNotFoundError(variant_id, test_id)

        value = conversion_value or 0.0

        if event_type == EventType.IMPRESSION:
            counters = {"impressions": ABTestVariant.impressions + 1}
        else:
            # SET expressions read the pre-update row, so conversions + 1 is the new count
            counters = {
                "conversions": ABTestVariant.conversions + 1,
                "revenue_generated": ABTestVariant.revenue_generated + value,
                "conversion_rate": (ABTestVariant.conversions + 1)
                * 100.0
                / case((ABTestVariant.impressions > 0, ABTestVariant.impressions), else_=1),
            }

        try:
            self.db.add(
                ABTestEvent(
                    id=generate_id("event"),
                    test_id=test_id,
                    variant_id=variant_id,
                    event_type=event_type,
                    user_identifier=user_identifier,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    referrer=referrer,
                    conversion_value=value,
                    metadata_=metadata,
                )
            )
            await self.db.execute(
                update(ABTestVariant)
                .where(ABTestVariant.id == variant_id)
                .values(**counters)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail(
                "ab_test_event_failed", e, test_id=test_id, variant_id=variant_id
            ) from e

        logger.debug(
            "ab_test_event_recorded",
            test_id=test_id,
            variant_id=variant_id,
            event_type=event_type.value,
        )

    # Allocator

    async def select_variant(
        self, test_id: str, user_identifier: Optional[str] = None
    ) -> Optional[ABTestVariant]:
        """
        Pick the variant to serve for one request.

        Returns None when the test is missing, not running or has no
        variants. Each call draws independently; ``user_identifier`` does not
        pin a user to a variant.
        """
        try:
            test = await self.get_test(test_id)
        except TestNotFoundError:
            return None

        if test.status != TestStatus.RUNNING:
            return None

        return pick_weighted_variant(test.variants, draw_traffic_point(self.rng))

    # Scorer

    async def get_results(self, test_id: str) -> TestResultsResponse:
        test = await self.get_test(test_id)

        variants = [
            VariantResultResponse.model_validate(
                {
                    **_variant_fields(v),
                    "calculated_conversion_rate": calculate_conversion_rate(
                        v.conversions, v.impressions
                    ),
                    "average_order_value": calculate_average_order_value(
                        v.revenue_generated, v.conversions
                    ),
                }
            )
            for v in test.variants
        ]

        significance = score_variants(
            [
                VariantCounts(
                    id=v.id,
                    impressions=v.impressions,
                    conversions=v.conversions,
                    revenue=v.revenue_generated,
                    is_control=v.variant_type == VariantType.CONTROL,
                )
                for v in test.variants
            ]
        )

        return TestResultsResponse(
            test=TestResponse.model_validate(test),
            variants=variants,
            significance=[
                SignificanceResponse(
                    variant_id=s.variant_id,
                    is_significant=s.is_significant,
                    confidence=s.confidence,
                    z_score=s.z_score,
                    p_value=s.p_value,
                )
                for s in significance
            ],
        )

    # Snapshots

    async def list_running_test_ids(self) -> List[str]:
        try:
            result = await self.db.execute(
                select(ABTest.id).where(ABTest.status == TestStatus.RUNNING)
            )
        except SQLAlchemyError as e:
            raise await self._fail("ab_test_list_running_failed", e) from e
        return list(result.scalars().all())

    async def calculate_results(
        self, test_id: str, snapshot_date: Optional[date] = None
    ) -> TestResultsResponse:
        """Store today's per-variant snapshot and the best confidence on the test."""
        results = await self.get_results(test_id)
        snapshot_date = snapshot_date or datetime.now(timezone.utc).date()

        try:
            existing = await self.db.execute(
                select(ABTestResult).where(
                    ABTestResult.test_id == test_id,
                    ABTestResult.snapshot_date == snapshot_date,
                )
            )
            by_variant = {row.variant_id: row for row in existing.scalars().all()}

            for variant in results.variants:
                snapshot = by_variant.get(variant.id)
                if snapshot is None:
                    snapshot = ABTestResult(
                        id=generate_id("result"),
                        test_id=test_id,
                        variant_id=variant.id,
                        snapshot_date=snapshot_date,
                    )
                    self.db.add(snapshot)

                snapshot.impressions = variant.impressions
                snapshot.conversions = variant.conversions
                snapshot.conversion_rate = variant.calculated_conversion_rate
                snapshot.revenue = variant.revenue_generated
                snapshot.average_order_value = variant.average_order_value

            best_confidence = max((s.confidence for s in results.significance), default=0.0)
            await self.db.execute(
                update(ABTest)
                .where(ABTest.id == test_id)
                .values(statistical_confidence=best_confidence)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail("ab_test_snapshot_failed", e, test_id=test_id) from e

        logger.info(
            "ab_test_snapshot_stored",
            test_id=test_id,
            snapshot_date=snapshot_date.isoformat(),
            statistical_confidence=best_confidence,
        )

        results.test.statistical_confidence = best_confidence
        return results

    async def list_snapshots(self, test_id: str) -> List[ABTestResult]:
        await self.get_test(test_id)

        try:
            result = await self.db.execute(
                select(ABTestResult)
                .where(ABTestResult.test_id == test_id)
                .order_by(ABTestResult.snapshot_date.desc(), ABTestResult.variant_id)
            )
        except SQLAlchemyError as e:
            raise await self._fail("ab_test_snapshot_list_failed", e, test_id=test_id) from e
        return list(result.scalars().all())


def _variant_fields(variant: ABTestVariant) -> Dict[str, Any]:
    return {
        "id": variant.id,
        "test_id": variant.test_id,
        "variant_name": variant.variant_name,
        "variant_type": variant.variant_type.value,
        "traffic_percentage": variant.traffic_percentage,
        "landing_page_id": variant.landing_page_id,
        "email_subject": variant.email_subject,
        "email_content": variant.email_content,
        "impressions": variant.impressions,
        "conversions": variant.conversions,
        "conversion_rate": variant.conversion_rate,
        "revenue_generated": variant.revenue_generated,
        "created_at": variant.created_at,
    }
