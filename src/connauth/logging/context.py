"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_component: ContextVar[str] = ContextVar("component", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    component: Optional[str] = None,
    operation: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if component is not None:
        _component.set(component)
    if operation is not None:
        _operation.set(operation)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_log_context() -> Dict[str, str]:
    return {
        "component": _component.get(),
        "operation": _operation.get(),
        "trace_id": _trace_id.get(),
    }


def clear_log_context() -> None:
    _component.set("")
    _operation.set("")
    _trace_id.set("")


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(component="orders-db", operation="init"):
            # All logs in this block carry component and operation
            meta = PostgresAuthMetadata.parse(properties, capabilities)
    """

    def __init__(
        self,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        trace_id: Optional[str] = None,
    ):
        self.new_context = {
            "component": component,
            "operation": operation,
            "trace_id": trace_id,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        set_log_context(**self.new_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(**self.old_context)
        return False
