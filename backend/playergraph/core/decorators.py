"""
Service layer decorators for common functionality.

This module provides the error handling decorator shared by the ETL, query,
community and alias detection services.
"""

import asyncio
import functools
import inspect
from typing import Any, Callable, Dict, ParamSpec, Type, TypeVar

import structlog
from neo4j.exceptions import ServiceUnavailable, SessionExpired

from playergraph.core.exceptions import (
    DatabaseError,
    ExternalServiceError,
    GraphStoreUnavailableError,
    ServiceException,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# Type variables for generic decorator typing
P = ParamSpec("P")
R = TypeVar("R")

_EXCLUDED_CONTEXT_ARGS = ("self", "db", "session", "tx")


def _build_context(
    func: Callable[..., Any],
    service_name: str,
    include_context: bool,
    args: Any,
    kwargs: Any,
) -> Dict[str, Any]:
    context: Dict[str, Any] = {
        "service": service_name,
        "operation": func.__name__,
    }
    if not include_context:
        return context

    bound_args = inspect.signature(func).bind(*args, **kwargs)
    bound_args.apply_defaults()
    for name, value in bound_args.arguments.items():
        if name in _EXCLUDED_CONTEXT_ARGS:
            continue
        # Limit string values to avoid huge log entries
        if isinstance(value, str) and len(value) > 100:
            context[name] = value[:100] + "..."
        else:
            context[name] = str(value)[:200] if value is not None else None
    return context


def service_error_handler(
    service_name: str,
    include_context: bool = True,
    default_error_type: Type[ServiceException] = ServiceException,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for handling async service method errors with structured logging.

    Service exceptions pass through unchanged. ``ValueError`` becomes
    :class:`ValidationError`, graph driver connectivity failures become
    :class:`GraphStoreUnavailableError`, other connectivity failures become
    :class:`ExternalServiceError` and anything else is wrapped in
    ``default_error_type`` (or :class:`DatabaseError` when it smells like SQL).
    Cancellation is never intercepted.

    :param service_name: Name of the service (e.g., "RelationshipQueryService")
    :param include_context: Whether to include method parameters in error context
    :param default_error_type: Default exception type to wrap generic errors
    :returns: Decorated function with error handling

    :example:
        @service_error_handler("RelationshipQueryService")
        async def get_relationship(self, player1: str, player2: str):
            ...
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        operation_name = func.__name__

        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            context = _build_context(
                func, service_name, include_context, args, kwargs
            )

            try:
                logger.debug("Service method called", **context)
                result = await func(*args, **kwargs)  # type: ignore[misc]
                logger.debug("Service method completed successfully", **context)
                return result

            except asyncio.CancelledError:
                raise

            except ServiceException as e:
                logger.error(
                    "Service operation failed",
                    error_type=e.__class__.__name__,
                    error_message=str(e),
                    error_context=e.context,
                    **context,
                )
                raise

            except ValueError as e:
                logger.error(
                    "Validation error in service operation",
                    error_message=str(e),
                    **context,
                )
                raise ValidationError(
                    message=str(e),
                    service=service_name,
                    operation=operation_name,
                    context=context if include_context else {},
                ) from e

            except (ServiceUnavailable, SessionExpired) as e:
                logger.error(
                    "Graph store unavailable",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    **context,
                )
                raise GraphStoreUnavailableError(
                    message=str(e),
                    service=service_name,
                    operation=operation_name,
                    context=context if include_context else {},
                    original_error=e,
                ) from e

            except (ConnectionError, TimeoutError) as e:
                logger.error(
                    "External service connectivity error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    **context,
                )
                raise ExternalServiceError(
                    message=str(e),
                    service=service_name,
                    operation=operation_name,
                    context=context if include_context else {},
                    original_error=e,
                ) from e

            except Exception as e:
                error: ServiceException
                if any(
                    keyword in str(e).lower()
                    for keyword in ["database", "sql", "transaction"]
                ):
                    error = DatabaseError(
                        message=str(e),
                        service=service_name,
                        operation=operation_name,
                        context=context if include_context else {},
                        original_error=e,
                    )
                else:
                    error = default_error_type(
                        message=f"Unexpected error in {service_name}.{operation_name}: {e}",
                        service=service_name,
                        operation=operation_name,
                        context=context if include_context else {},
                        original_error=e,
                    )

                logger.error(
                    "Unexpected error in service operation",
                    error_type=e.__class__.__name__,
                    error_message=str(e),
                    **context,
                )
                raise error from e

        if not inspect.iscoroutinefunction(func):
            raise TypeError(
                f"service_error_handler only decorates coroutines, got {operation_name}"
            )
        return async_wrapper  # type: ignore[return-value]

    return decorator
