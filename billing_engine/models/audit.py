"""
Audit Models for the Billing Engine

Records what the engine had to work around and what the service
facade changed in the store:
1. Fallbacks applied to incomplete data (orphaned card purchases)
2. Data anomalies tolerated (double reimbursements, capped ranges)
3. Mutations sent to the store (confirmations, deletions)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class EngineEventType(str, Enum):
    """Types of events we audit."""
    # Snapshot handling
    SNAPSHOT_FETCHED = "snapshot_fetched"
    SNAPSHOT_FETCH_FAILED = "snapshot_fetch_failed"
    SNAPSHOT_VALIDATED = "snapshot_validated"

    # Tolerated data gaps
    CARD_FALLBACK_APPLIED = "card_fallback_applied"
    MONTH_RANGE_CAPPED = "month_range_capped"
    DUPLICATE_REIMBURSEMENT = "duplicate_reimbursement"

    # Projected entries
    VIRTUAL_ENTRY_CONFIRMED = "virtual_entry_confirmed"
    VIRTUAL_ENTRY_REJECTED = "virtual_entry_rejected"

    # Store mutations
    REIMBURSEMENT_RECORDED = "reimbursement_recorded"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"

    # System events
    STORE_ERROR = "store_error"


class EventSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngineEvent(BaseModel):
    """
    A single audit event.

    Entity ids are the store's string ids (expense, income, card or
    installment ids).
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: EngineEventType = Field(
        ...,
        description="Type of event"
    )
    severity: EventSeverity = Field(
        default=EventSeverity.INFO,
        description="Event severity"
    )

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'income', 'installment')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one overview request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_row(self) -> list:
        """
        Flatten for tabular audit storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        import json

        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class EngineEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = EngineEventBuilder.card_fallback_applied(expense_id, card_id)
        event = EngineEventBuilder.virtual_entry_confirmed("income", virtual_id, new_id)
    """

    @staticmethod
    def snapshot_fetched(
        expenses: int,
        incomes: int,
        cards: int,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.SNAPSHOT_FETCHED,
            severity=EventSeverity.DEBUG,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description="Snapshot fetched from store",
            details={
                "expenses": expenses,
                "incomes": incomes,
                "cards": cards,
            },
        )

    @staticmethod
    def snapshot_fetch_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.SNAPSHOT_FETCH_FAILED,
            severity=EventSeverity.ERROR,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description="Snapshot could not be fetched",
            error_message=error_message,
        )

    @staticmethod
    def snapshot_validated(
        is_valid: bool,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.SNAPSHOT_VALIDATED,
            severity=EventSeverity.INFO if is_valid else EventSeverity.WARNING,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description=(
                "Snapshot passed validation" if is_valid
                else f"Snapshot has {len(issues)} validation issue(s)"
            ),
            details={"issues": issues},
        )

    @staticmethod
    def card_fallback_applied(
        expense_id: str,
        card_id: Optional[str],
        best_purchase_day: int,
        due_day: int,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.CARD_FALLBACK_APPLIED,
            severity=EventSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Card {card_id!r} not found, fallback cycle applied",
            details={
                "card_id": card_id,
                "best_purchase_day": best_purchase_day,
                "due_day": due_day,
            },
        )

    @staticmethod
    def month_range_capped(
        start: str,
        end: str,
        cap: int,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.MONTH_RANGE_CAPPED,
            severity=EventSeverity.WARNING,
            entity_type="month_range",
            correlation_id=correlation_id,
            description=f"Month range {start}..{end} capped at {cap} months",
            details={"start": start, "end": end, "cap": cap},
        )

    @staticmethod
    def duplicate_reimbursement(
        installment_id: str,
        income_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.DUPLICATE_REIMBURSEMENT,
            severity=EventSeverity.WARNING,
            entity_type="installment",
            entity_id=installment_id,
            correlation_id=correlation_id,
            description=f"Installment {installment_id} is reimbursed {len(income_ids)} times",
            details={"income_ids": income_ids},
        )

    @staticmethod
    def virtual_entry_confirmed(
        entity_type: str,
        virtual_id: str,
        new_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.VIRTUAL_ENTRY_CONFIRMED,
            entity_type=entity_type,
            entity_id=new_id,
            correlation_id=correlation_id,
            description=f"Projected {entity_type} {virtual_id} confirmed",
            details={"virtual_id": virtual_id},
        )

    @staticmethod
    def virtual_entry_rejected(
        entity_type: str,
        virtual_id: str,
        action: str,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.VIRTUAL_ENTRY_REJECTED,
            severity=EventSeverity.WARNING,
            entity_type=entity_type,
            entity_id=virtual_id,
            correlation_id=correlation_id,
            description=f"Cannot {action} projected {entity_type} {virtual_id}",
            details={"action": action},
        )

    @staticmethod
    def reimbursement_recorded(
        installment_id: str,
        income_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.REIMBURSEMENT_RECORDED,
            entity_type="installment",
            entity_id=installment_id,
            correlation_id=correlation_id,
            description=f"Reimbursement recorded for installment {installment_id}",
            details={"income_id": income_id, "amount": amount},
        )

    @staticmethod
    def entity_changed(
        event_type: EngineEventType,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        verb = {
            EngineEventType.ENTITY_UPDATED: "updated",
            EngineEventType.ENTITY_DELETED: "deleted",
        }.get(event_type, "changed")
        return EngineEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {entity_id} {verb}",
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> EngineEvent:
        return EngineEvent(
            event_type=EngineEventType.STORE_ERROR,
            severity=EventSeverity.ERROR,
            entity_type="store",
            correlation_id=correlation_id,
            description=f"Store operation failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )
