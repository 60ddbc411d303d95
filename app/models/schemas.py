from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class TestTypeEnum(str, Enum):
    __test__ = False

    LANDING_PAGE = "landing_page"
    EMAIL_SUBJECT = "email_subject"
    EMAIL_CONTENT = "email_content"


class TestStatusEnum(str, Enum):
    __test__ = False

    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class VariantTypeEnum(str, Enum):
    CONTROL = "control"
    VARIANT_A = "variant_a"
    VARIANT_B = "variant_b"
    VARIANT_C = "variant_c"


class EventTypeEnum(str, Enum):
    IMPRESSION = "impression"
    CONVERSION = "conversion"


class CamelRequest(BaseModel):
    """Request bodies accept both camelCase (admin panel) and snake_case keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CreateVariantRequest(CamelRequest):
    variant_name: str = Field(..., min_length=1, max_length=100)
    variant_type: VariantTypeEnum
    traffic_percentage: float = Field(
        50, ge=0, le=100, description="Share of traffic routed to this variant"
    )
    landing_page_id: Optional[str] = None
    email_subject: Optional[str] = Field(None, max_length=500)
    email_content: Optional[str] = None


class CreateTestRequest(CamelRequest):
    test_name: str = Field(..., min_length=1, max_length=255)
    test_type: TestTypeEnum
    variants: List[CreateVariantRequest] = Field(
        ..., min_length=2, description="Variants under test (min 2)"
    )


class CompleteTestRequest(CamelRequest):
    winning_variant_id: Optional[str] = None


class RecordEventRequest(CamelRequest):
    variant_id: str = Field(..., min_length=1)
    event_type: EventTypeEnum
    user_identifier: Optional[str] = Field(None, max_length=255)
    conversion_value: Optional[float] = Field(None, ge=0)
    metadata: Optional[Any] = None


class VariantResponse(BaseModel):
    id: str
    test_id: str
    variant_name: str
    variant_type: VariantTypeEnum
    traffic_percentage: float
    landing_page_id: Optional[str] = None
    email_subject: Optional[str] = None
    email_content: Optional[str] = None
    impressions: int
    conversions: int
    conversion_rate: float
    revenue_generated: float
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TestResponse(BaseModel):
    __test__ = False

    id: str
    test_name: str
    test_type: TestTypeEnum
    status: TestStatusEnum
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    winning_variant_id: Optional[str]
    statistical_confidence: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    variants: List[VariantResponse] = []

    class Config:
        from_attributes = True


class TestSummaryResponse(BaseModel):
    """A test row with aggregates over its variants, used by the listing."""

    __test__ = False

    id: str
    test_name: str
    test_type: TestTypeEnum
    status: TestStatusEnum
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    winning_variant_id: Optional[str]
    statistical_confidence: float
    created_at: Optional[datetime] = None
    variant_count: int
    total_impressions: int
    total_conversions: int
    avg_conversion_rate: Optional[float]


class TestEnvelope(BaseModel):
    __test__ = False

    test: TestResponse


class TestListResponse(BaseModel):
    __test__ = False

    tests: List[TestSummaryResponse]


class VariantEnvelope(BaseModel):
    variant: VariantResponse


class ActionResponse(BaseModel):
    success: bool = True
    message: str


class EventRecordedResponse(BaseModel):
    success: bool = True


class VariantResultResponse(VariantResponse):
    calculated_conversion_rate: float
    average_order_value: float


class SignificanceResponse(BaseModel):
    variant_id: str
    is_significant: bool
    confidence: float
    z_score: float = 0.0
    p_value: Optional[float] = None


class TestResultsResponse(BaseModel):
    __test__ = False

    test: TestResponse
    variants: List[VariantResultResponse]
    significance: List[SignificanceResponse]


class SnapshotResponse(BaseModel):
    id: str
    test_id: str
    variant_id: str
    snapshot_date: date
    impressions: int
    conversions: int
    conversion_rate: float
    revenue: float
    average_order_value: float

    class Config:
        from_attributes = True


class SnapshotListResponse(BaseModel):
    snapshots: List[SnapshotResponse]


class ErrorResponse(BaseModel):
    error: str
    message: str
