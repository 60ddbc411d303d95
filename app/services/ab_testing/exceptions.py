class ABTestingError(Exception):
    """Base class for errors raised by the A/B testing service."""

    status_code = 500
    error = "A/B testing error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TestNotFoundError(ABTestingError):
    __test__ = False

    status_code = 404
    error = "Test not found"

    def __init__(self, test_id: str):
        super().__init__(f"A/B test '{test_id}' does not exist")
        self.test_id = test_id


class VariantNotFoundError(ABTestingError):
    status_code = 404
    error = "Variant not found"

    def __init__(self, variant_id: str, test_id: str):
        super().__init__(f"Variant '{variant_id}' does not belong to A/B test '{test_id}'")
        self.variant_id = variant_id
        self.test_id = test_id


class StorageError(ABTestingError):
    """A database call failed. The original exception is chained."""

    error = "Storage failure"

    def __init__(self, operation: str, detail: str):
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
