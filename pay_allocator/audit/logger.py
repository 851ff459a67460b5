"""
Audit Logger

DESIGN DECISION: Every write and every refusal is logged.
This provides:
1. Traceability of split and proposal changes between co-owners
2. Debugging capability when two users see different totals
3. A history users can be shown

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from pay_allocator.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from pay_allocator.services.storage import RecordStore, Table


# Configure structlog for local logging
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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The record store's audit_log table (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[RecordStore] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Record store for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                await self._storage.insert(Table.AUDIT_LOG, event.to_record())
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_saved(
        self,
        expense_id: UUID,
        name: str,
        amount: float,
        frequency: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense create or update."""
        event = AuditEventBuilder.expense_saved(
            expense_id=expense_id,
            name=name,
            amount=amount,
            frequency=frequency,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_deleted(
        self,
        expense_id: UUID,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_deleted(expense_id, actor_id, correlation_id)
        await self.log(event)

    async def log_account_saved(self, account_id: UUID, name: str, owner_count: int, actor_id: UUID) -> None:
        event = AuditEventBuilder.account_saved(account_id, name, owner_count, actor_id)
        await self.log(event)

    async def log_account_deleted(self, account_id: UUID, detached_expenses: int, actor_id: UUID) -> None:
        event = AuditEventBuilder.account_deleted(account_id, detached_expenses, actor_id)
        await self.log(event)

    async def log_income_deleted(self, income_id: UUID, source: str, actor_id: UUID) -> None:
        event = AuditEventBuilder.income_deleted(income_id, source, actor_id)
        await self.log(event)

    async def log_record_saved(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        name: str,
        actor_id: UUID,
    ) -> None:
        """Log an income or category save."""
        event = AuditEventBuilder.record_saved(event_type, entity_type, entity_id, name, actor_id)
        await self.log(event)

    async def log_split_saved(
        self,
        expense_id: UUID,
        user_id: UUID,
        ratio: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a user writing their own split row."""
        event = AuditEventBuilder.split_saved(
            expense_id=expense_id,
            user_id=user_id,
            ratio=ratio,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_proposal_created(
        self,
        proposal_id: UUID,
        expense_id: UUID,
        from_user: UUID,
        to_user: UUID,
        ratio: float,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new pending proposal."""
        event = AuditEventBuilder.proposal_created(
            proposal_id=proposal_id,
            expense_id=expense_id,
            from_user=from_user,
            to_user=to_user,
            ratio=ratio,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_proposal_superseded(
        self,
        proposal_id: UUID,
        replaced_by: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a pending proposal being replaced."""
        event = AuditEventBuilder.proposal_superseded(
            proposal_id=proposal_id,
            replaced_by=replaced_by,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_proposal_decided(
        self,
        proposal_id: UUID,
        accepted: bool,
        actor_id: UUID,
        ratio: float,
    ) -> None:
        """Log an accept or reject."""
        event = AuditEventBuilder.proposal_decided(
            proposal_id=proposal_id,
            accepted=accepted,
            actor_id=actor_id,
            ratio=ratio,
        )
        await self.log(event)

    async def log_refused(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[UUID],
        actor_id: Optional[UUID],
        reason: str,
    ) -> None:
        """Log an authorization, state or validation refusal."""
        event = AuditEventBuilder.refused(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            reason=reason,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[dict],
        actor_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            issues=issues,
            actor_id=actor_id,
        )
        await self.log(event)

    async def log_store_error(
        self,
        operation: str,
        error_message: str,
        transient: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a backing store failure."""
        event = AuditEventBuilder.store_error(
            operation=operation,
            error_message=error_message,
            transient=transient,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving an expense).
    Pass it through all subsequent operations, including proposal fan-out.
    """
    return uuid4()
