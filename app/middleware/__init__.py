from app.middleware.telemetry import TelemetryMiddleware

__all__ = ["TelemetryMiddleware"]
