"""
Service layer custom exceptions.

Absence of a player, server or pair is a steady state and is reported as
``None`` or an empty list, never as one of these exceptions.
"""

from typing import Any, Dict, Optional


class ServiceException(Exception):
    """Base exception for all service layer errors."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.operation = operation
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        if self.service and self.operation:
            return f"[{self.service}.{self.operation}] {self.message}"
        return self.message


class DatabaseError(ServiceException):
    """Exception raised for session store errors in services."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"Database error: {message}",
            service=service,
            operation=operation,
            context=context,
            original_error=original_error,
        )


class ValidationError(ServiceException):
    """Exception raised for input validation errors in services."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        validation_context = context or {}
        if field:
            validation_context["field"] = field
        if value is not None:
            validation_context["value"] = str(value)

        super().__init__(
            message=f"Validation error: {message}",
            service=service,
            operation=operation,
            context=validation_context,
        )


class ExternalServiceError(ServiceException):
    """Exception raised when an external store (graph, cache) cannot be reached."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        external_service: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        external_context = context or {}
        if external_service:
            external_context["external_service"] = external_service

        super().__init__(
            message=f"External service error: {message}",
            service=service,
            operation=operation,
            context=external_context,
            original_error=original_error,
        )


class GraphStoreUnavailableError(ExternalServiceError):
    """The graph store rejected or dropped a primary read or write."""

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            service=service,
            operation=operation,
            external_service="neo4j",
            context=context,
            original_error=original_error,
        )


class BatchSyncError(ServiceException):
    """
    One ETL flush failed and none of its pairs were written.

    Flushes committed before the failure stay committed. The attributes carry
    what a caller needs to resume from the failed window.
    """

    def __init__(
        self,
        message: str,
        pair_count: int,
        first_round_id: Optional[str] = None,
        last_round_id: Optional[str] = None,
        rounds_processed: int = 0,
        relationships_committed: int = 0,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.pair_count = pair_count
        self.first_round_id = first_round_id
        self.last_round_id = last_round_id
        self.rounds_processed = rounds_processed
        self.relationships_committed = relationships_committed

        super().__init__(
            message=f"Batch sync failed: {message}",
            service="RelationshipEtlService",
            operation=operation,
            context={
                "pair_count": pair_count,
                "first_round_id": first_round_id,
                "last_round_id": last_round_id,
                "rounds_processed": rounds_processed,
                "relationships_committed": relationships_committed,
            },
            original_error=original_error,
        )
