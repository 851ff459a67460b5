"""
Audit Models for Pay Period Allocator

Every write the engine performs, and every request it refuses, is
recorded as an audit event. This provides:
1. Traceability of who changed which split and when
2. Debugging information when co-owners see different totals
3. A record of every proposal decision

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Household records
    EXPENSE_SAVED = "expense_saved"
    EXPENSE_DELETED = "expense_deleted"
    ACCOUNT_SAVED = "account_saved"
    ACCOUNT_DELETED = "account_deleted"
    INCOME_SAVED = "income_saved"
    INCOME_DELETED = "income_deleted"
    CATEGORY_SAVED = "category_saved"
    SPLIT_SAVED = "split_saved"

    # Proposal lifecycle
    PROPOSAL_CREATED = "proposal_created"
    PROPOSAL_SUPERSEDED = "proposal_superseded"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_REJECTED = "proposal_rejected"

    # Refusals
    VALIDATION_FAILED = "validation_failed"
    AUTHORIZATION_DENIED = "authorization_denied"
    INVALID_STATE = "invalid_state"

    # System events
    STORE_ERROR = "store_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'proposal', 'account')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    actor_id: Optional[UUID] = Field(
        default=None,
        description="User who caused the event, when known"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one expense save and its fan-out)"
    )

    # Event details
    description: str = Field(
        ...,
        description="Human-readable description"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional structured details"
    )

    # Error information
    error_code: Optional[str] = None
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
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_record(self) -> dict:
        """Convert to a flat record for the audit_log table."""
        record = self.model_dump(mode="json")
        record["id"] = record["event_id"]
        return record


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.proposal_created(proposal_id, ...)
        event = AuditEventBuilder.proposal_decided(proposal_id, accepted=True, ...)
    """

    @staticmethod
    def expense_saved(
        expense_id: UUID,
        name: str,
        amount: float,
        frequency: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense saved: {name} - {amount:,.2f} {frequency}",
            details={
                "name": name,
                "amount": amount,
                "frequency": frequency,
            },
        )

    @staticmethod
    def expense_deleted(
        expense_id: UUID,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Expense deleted",
        )

    @staticmethod
    def account_saved(
        account_id: UUID,
        name: str,
        owner_count: int,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_SAVED,
            entity_type="account",
            entity_id=account_id,
            actor_id=actor_id,
            description=f"Account saved: {name}",
            details={"owner_count": owner_count},
        )

    @staticmethod
    def account_deleted(
        account_id: UUID,
        detached_expenses: int,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            actor_id=actor_id,
            description=f"Account deleted, {detached_expenses} expenses detached",
            details={"detached_expenses": detached_expenses},
        )

    @staticmethod
    def income_deleted(income_id: UUID, source: str, actor_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_DELETED,
            entity_type="income",
            entity_id=income_id,
            actor_id=actor_id,
            description=f"Income deleted: {source}",
        )

    @staticmethod
    def record_saved(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        name: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=f"{entity_type.capitalize()} saved: {name}",
        )

    @staticmethod
    def split_saved(
        expense_id: UUID,
        user_id: UUID,
        ratio: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_SAVED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=user_id,
            correlation_id=correlation_id,
            description=f"Split saved at {ratio:.0%}",
            details={"ratio": ratio},
        )

    @staticmethod
    def proposal_created(
        proposal_id: UUID,
        expense_id: UUID,
        from_user: UUID,
        to_user: UUID,
        ratio: float,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROPOSAL_CREATED,
            entity_type="proposal",
            entity_id=proposal_id,
            actor_id=from_user,
            correlation_id=correlation_id,
            description=f"Split proposed at {ratio:.0%} ({amount:,.2f})",
            details={
                "expense_id": str(expense_id),
                "to_user": str(to_user),
                "suggested_ratio": ratio,
                "suggested_amount": amount,
            },
        )

    @staticmethod
    def proposal_superseded(
        proposal_id: UUID,
        replaced_by: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROPOSAL_SUPERSEDED,
            entity_type="proposal",
            entity_id=proposal_id,
            correlation_id=correlation_id,
            description="Pending proposal superseded by a newer one",
            details={"replaced_by": str(replaced_by)},
        )

    @staticmethod
    def proposal_decided(
        proposal_id: UUID,
        accepted: bool,
        actor_id: UUID,
        ratio: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.PROPOSAL_ACCEPTED
                if accepted
                else AuditEventType.PROPOSAL_REJECTED
            ),
            entity_type="proposal",
            entity_id=proposal_id,
            actor_id=actor_id,
            description=(
                f"Proposal accepted at {ratio:.0%}"
                if accepted
                else "Proposal rejected"
            ),
            details={"suggested_ratio": ratio},
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        issues: list[dict],
        actor_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            actor_id=actor_id,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def refused(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[UUID],
        actor_id: Optional[UUID],
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=f"Refused: {reason}",
            error_message=reason,
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        transient: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Store error during {operation}",
            error_code="transient" if transient else "permanent",
            error_message=error_message,
            details={"operation": operation, "transient": transient},
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
