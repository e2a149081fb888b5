"""
Audit Logger

DESIGN DECISION: Every workaround the engine applies and every change
the service sends to the store is logged. This provides:
1. Traceability of orphaned or inconsistent records
2. Debugging capability when a statement looks wrong
3. History of confirmations and deletions

The audit logger:
- Is synchronous, like the engine it serves
- Gracefully handles failures (a broken audit store never breaks a view)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from billing_engine.config import get_settings
from billing_engine.models.audit import EngineEvent, EngineEventBuilder
from billing_engine.services.store import AuditStorageInterface


def configure_logging() -> None:
    """Configure structlog from LoggingSettings."""
    log_settings = get_settings().logging
    level = getattr(logging, log_settings.level)

    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("billing_engine").setLevel(level)

    renderer = (
        structlog.processors.JSONRenderer()
        if log_settings.json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("billing_engine.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def log(self, event: EngineEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        severity = event.severity.value
        if severity in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif severity == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif severity == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_card_fallback(
        self,
        expense_id: str,
        card_id: Optional[str],
        best_purchase_day: int,
        due_day: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log that an orphaned purchase was billed with the fallback cycle."""
        self.log(EngineEventBuilder.card_fallback_applied(
            expense_id=expense_id,
            card_id=card_id,
            best_purchase_day=best_purchase_day,
            due_day=due_day,
            correlation_id=correlation_id,
        ))

    def log_month_range_capped(
        self,
        start: str,
        end: str,
        cap: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(EngineEventBuilder.month_range_capped(
            start=start,
            end=end,
            cap=cap,
            correlation_id=correlation_id,
        ))

    def log_duplicate_reimbursement(
        self,
        installment_id: str,
        income_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(EngineEventBuilder.duplicate_reimbursement(
            installment_id=installment_id,
            income_ids=income_ids,
            correlation_id=correlation_id,
        ))

    def log_store_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(EngineEventBuilder.store_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a request (e.g., one monthly overview).
    Pass it through all subsequent operations.
    """
    return uuid4()
