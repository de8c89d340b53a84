"""Per-task log context (stage, worker, batch) carried in context variables.

asyncio copies the current context into each new task, so a value set at
the top of a task's coroutine is seen by every log record it emits and
by nothing outside it. The ids of the active OpenTelemetry span, when
there is one, are added alongside.
"""

from contextvars import ContextVar, Token

from opentelemetry import trace

_FIELDS: dict[str, ContextVar[str]] = {
    "stage": ContextVar("log_stage", default=""),
    "worker_id": ContextVar("log_worker_id", default=""),
    "batch_id": ContextVar("log_batch_id", default=""),
}

ContextTokens = dict[str, Token]


def set_log_context(
    stage: str | None = None,
    worker_id: str | None = None,
    batch_id: str | None = None,
) -> ContextTokens:
    """Set the given fields; returns tokens that undo exactly these changes."""
    updates = {"stage": stage, "worker_id": worker_id, "batch_id": batch_id}
    return {name: _FIELDS[name].set(value) for name, value in updates.items() if value is not None}


def reset_log_context(tokens: ContextTokens) -> None:
    for name, token in tokens.items():
        _FIELDS[name].reset(token)


def get_log_context() -> dict[str, str]:
    context = {name: var.get() for name, var in _FIELDS.items()}

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        context["trace_id"] = format(span_context.trace_id, "032x")
        context["span_id"] = format(span_context.span_id, "016x")
    return context


def clear_log_context() -> None:
    for var in _FIELDS.values():
        var.set("")
