# Structured exception hierarchy for the order execution engine

from typing import Dict, Any, Optional
from datetime import datetime, timezone


class OrderEngineException(Exception):
    """Base exception for all order execution engine errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 correlation_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.correlation_id = correlation_id
        self.timestamp = datetime.now(timezone.utc)


class TransientError(OrderEngineException):
    """Base class for transient errors that should be retried with exponential backoff"""
    retryable = True


class PermanentError(OrderEngineException):
    """Base class for permanent errors that must not be retried"""
    retryable = False


# Execution Errors (raised inside pipeline stages, retried by the queue)
class TransientExecutionError(TransientError):
    """Quote or swap failure during a pipeline stage"""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.source = source


class QuoteUnavailableError(TransientExecutionError):
    """A liquidity source failed to produce a quote"""
    pass


class NoRouteAvailableError(TransientExecutionError):
    """Every configured liquidity source failed to quote"""

    def __init__(self, message: str, failures: Optional[Dict[str, str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.failures = failures or {}


class SwapExecutionError(TransientExecutionError):
    """Swap rejected or failed at execution time (slippage, congestion)"""
    pass


# Infrastructure Errors
class InfrastructureError(TransientError):
    """Base class for infrastructure failures"""

    def __init__(self, message: str, operation: str, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation


class StoreUnavailableError(InfrastructureError):
    """Persistent store connection or query failures"""

    def __init__(self, message: str, operation: str, table: Optional[str] = None,
                 **kwargs):
        super().__init__(message, operation, **kwargs)
        self.table = table


class CacheUnavailableError(InfrastructureError):
    """Redis connection or operation failures"""

    def __init__(self, message: str, operation: str, key: Optional[str] = None,
                 **kwargs):
        super().__init__(message, operation, **kwargs)
        self.key = key


# Validation Errors
class ValidationError(PermanentError):
    """Malformed submission - rejected before enqueue"""

    def __init__(self, message: str, field: str, value: Any,
                 expected_type: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.expected_type = expected_type


# Order Errors
class OrderNotFoundError(PermanentError):
    """Unknown order id on lookup"""

    def __init__(self, order_id: str, **kwargs):
        super().__init__(f"Order not found: {order_id}", **kwargs)
        self.order_id = order_id


class InvalidTransitionError(PermanentError):
    """Status change outside the order transition graph"""

    def __init__(self, order_id: str, current: Any, requested: Any, **kwargs):
        super().__init__(
            f"Order {order_id} cannot move from {current} to {requested}", **kwargs
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class UnknownSourceError(PermanentError):
    """Liquidity source name not registered with the routing engine"""

    def __init__(self, source: str, **kwargs):
        super().__init__(f"Unknown liquidity source: {source}", **kwargs)
        self.source = source


# Queue Errors
class QueueClosedError(PermanentError):
    """Queue no longer accepts work"""
    pass


class DuplicateJobError(PermanentError):
    """A job with the same id is already waiting or active"""

    def __init__(self, job_id: str, **kwargs):
        super().__init__(f"Job already queued or running: {job_id}", **kwargs)
        self.job_id = job_id


class JobStalledError(PermanentError):
    """Job exceeded the allowed number of stalls"""

    def __init__(self, job_id: str, stalled_count: int, **kwargs):
        super().__init__(
            f"Job {job_id} stalled more than allowable limit ({stalled_count})", **kwargs
        )
        self.job_id = job_id
        self.stalled_count = stalled_count


class PermanentFailure(PermanentError):
    """Attempt budget exhausted; carries the error that triggered the final failure"""

    def __init__(self, job_id: str, attempts_made: int, last_error: BaseException, **kwargs):
        super().__init__(str(last_error) or type(last_error).__name__, **kwargs)
        self.job_id = job_id
        self.attempts_made = attempts_made
        self.last_error = last_error


def is_retryable_error(error: BaseException) -> bool:
    """
    Determine if an error should be retried

    Returns:
        False for permanent errors, True for everything else
    """
    return not isinstance(error, PermanentError)


def create_error_context(error: BaseException, operation: str,
                         additional_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Create structured error context for logging and monitoring

    Args:
        error: The exception that occurred
        operation: The operation that failed
        additional_context: Additional context information

    Returns:
        Structured error context dictionary
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "operation": operation,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "retryable": is_retryable_error(error)
    }

    if isinstance(error, OrderEngineException):
        if error.correlation_id:
            context["correlation_id"] = error.correlation_id
        if error.details:
            context["error_details"] = error.details

        if isinstance(error, TransientExecutionError) and error.source:
            context["source"] = error.source

        if isinstance(error, InfrastructureError):
            context["infra_operation"] = error.operation

    # Merge additional context
    if additional_context:
        context.update(additional_context)

    return context
