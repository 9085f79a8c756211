"""
Audit Logger

DESIGN DECISION: Every ledger mutation and account change is logged.
This provides:
1. Complete traceability of who changed which debt
2. Debugging capability
3. A history users can inspect

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from settleup.models.audit import AuditEvent, AuditEventBuilder
from settleup.services.storage import AuditStorageInterface


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
    2. The audit collection of the configured store (for persistence)
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
        self._logger = structlog.get_logger("settleup.audit")

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
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_user_registered(
        self,
        user_id: UUID,
        email: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_registered(
            user_id=user_id,
            email=email,
            correlation_id=correlation_id,
        ))

    async def log_registration_rejected(
        self,
        email: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.registration_rejected(
            email=email,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_login(
        self,
        email: str,
        user_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        """Log a login attempt; user_id is None when the email was unknown."""
        if user_id is None:
            event = AuditEventBuilder.login_failed(
                email=email,
                correlation_id=correlation_id,
            )
        else:
            event = AuditEventBuilder.user_logged_in(
                user_id=user_id,
                correlation_id=correlation_id,
            )
        await self.log(event)

    async def log_friendship_changed(
        self,
        user_id: UUID,
        friend_id: UUID,
        added: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.friendship_changed(
            user_id=user_id,
            friend_id=friend_id,
            added=added,
            correlation_id=correlation_id,
        ))

    async def log_transaction_created(
        self,
        transaction_id: UUID,
        related_transaction_id: UUID,
        category: str,
        amount: str,
        actor_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            related_transaction_id=related_transaction_id,
            category=category,
            amount=amount,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: UUID,
        changed_fields: list[str],
        actor_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_settled(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_settled(
            transaction_id=transaction_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_split_created(
        self,
        initiator_id: UUID,
        total: str,
        split_type: str,
        transaction_ids: list[UUID],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.split_created(
            initiator_id=initiator_id,
            total=total,
            split_type=split_type,
            transaction_ids=transaction_ids,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        operation: str,
        issues: list[dict],
        actor_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            operation=operation,
            issues=issues,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., splitting a bill).
    Pass it through all subsequent operations.
    """
    return uuid4()
