# app/core/error_reporting.py
"""Error-tracking sink. Capturing never blocks or raises into the caller."""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)


class ErrorReporter:
    """Thin wrapper over sentry_sdk so services can take it as a collaborator."""

    def __init__(self, dsn: str = "", environment: str = "development"):
        self.enabled = bool(dsn)
        if self.enabled:
            sentry_sdk.init(dsn=dsn, environment=environment)
            logger.info("Error tracking enabled for environment %s", environment)

    def capture(self, exc: BaseException, **context: Any) -> None:
        if not self.enabled:
            return
        try:
            with sentry_sdk.new_scope() as scope:
                for key, value in context.items():
                    scope.set_extra(key, value)
                sentry_sdk.capture_exception(exc)
        except Exception as report_exc:  # pragma: no cover - sink failures are only logged
            logger.warning("Failed to report exception to error tracker: %s", report_exc)

    def flush(self, timeout: Optional[float] = 2.0) -> None:
        if self.enabled:
            sentry_sdk.flush(timeout=timeout)


class NullErrorReporter(ErrorReporter):
    """Reporter that drops everything; used by scripts and tests."""

    def __init__(self):
        super().__init__(dsn="")
        self.captured: list = []

    def capture(self, exc: BaseException, **context: Any) -> None:
        self.captured.append((exc, dict(context)))


def build_error_reporter(settings) -> ErrorReporter:
    return ErrorReporter(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT)
