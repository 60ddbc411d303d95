from app.models.ab_test import (  # noqa: F401
    ABTest,
    ABTestEvent,
    ABTestResult,
    ABTestVariant,
    EventType,
    TestStatus,
    TestType,
    VariantType,
)
from app.models.schemas import (  # noqa: F401
    CreateTestRequest,
    CreateVariantRequest,
    RecordEventRequest,
    TestResponse,
    TestResultsResponse,
    VariantResponse,
)
