"""Lifecycle hooks for jobs, steps, chunks and items."""
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class HookEvent(str, Enum):
    BEFORE_JOB = "before_job"
    AFTER_JOB = "after_job"
    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"
    BEFORE_CHUNK = "before_chunk"
    AFTER_CHUNK = "after_chunk"
    CHUNK_ERROR = "chunk_error"
    BEFORE_READ = "before_read"
    AFTER_READ = "after_read"
    READ_ERROR = "read_error"
    BEFORE_PROCESS = "before_process"
    AFTER_PROCESS = "after_process"
    PROCESS_ERROR = "process_error"
    BEFORE_WRITE = "before_write"
    AFTER_WRITE = "after_write"
    WRITE_ERROR = "write_error"


@dataclass
class HookContext:
    """What a hook callback receives. Unused fields stay None."""
    event: HookEvent
    name: str
    item: Any = None
    result: Any = None
    items: Optional[List[Any]] = None
    chunk: Optional[int] = None
    error: Optional[BaseException] = None
    execution: Any = None


HookCallback = Callable[[HookContext], None]


class Hooks:
    """Ordered callbacks per event. Hooks observe; they never steer."""

    def __init__(self):
        self._callbacks: Dict[HookEvent, List[HookCallback]] = defaultdict(list)

    def register(self, event: HookEvent, callback: HookCallback) -> HookCallback:
        self._callbacks[event].append(callback)
        return callback

    def fire(self, event: HookEvent, name: str, **fields):
        """Invoke callbacks in registration order; failures are only logged."""
        callbacks = self._callbacks.get(event)
        if not callbacks:
            return
        context = HookContext(event=event, name=name, **fields)
        for callback in callbacks:
            try:
                callback(context)
            except Exception as e:
                logger.warning(
                    f"{event.value} hook {getattr(callback, '__name__', callback)!r} failed: {e}"
                )


# Message templates for logging_hooks, keyed by event
_MESSAGES = {
    HookEvent.BEFORE_STEP: "Starting {label} step",
    HookEvent.AFTER_STEP: "Finished {label} step",
    HookEvent.BEFORE_CHUNK: "Starting {label} chunk {chunk}",
    HookEvent.AFTER_CHUNK: "Finished {label} chunk {chunk}",
    HookEvent.CHUNK_ERROR: "Error in {label} chunk {chunk}: {error}",
    HookEvent.BEFORE_READ: "Reading {label}",
    HookEvent.AFTER_READ: "Read {label}: {item}",
    HookEvent.READ_ERROR: "Error reading {label}: {error}",
    HookEvent.BEFORE_PROCESS: "Processing {label}: {item}",
    HookEvent.AFTER_PROCESS: "Processed {label}: {result}",
    HookEvent.PROCESS_ERROR: "Error processing {label} {item}: {error}",
    HookEvent.BEFORE_WRITE: "Writing {count} {label}",
    HookEvent.AFTER_WRITE: "Wrote {count} {label}",
    HookEvent.WRITE_ERROR: "Error writing {label}: {error}",
    HookEvent.BEFORE_JOB: "Starting job {name}",
    HookEvent.AFTER_JOB: "Finished job {name}",
}

_ERROR_EVENTS = {
    HookEvent.CHUNK_ERROR,
    HookEvent.READ_ERROR,
    HookEvent.PROCESS_ERROR,
    HookEvent.WRITE_ERROR,
}

# Per-item events are chatty
_DEBUG_EVENTS = {
    HookEvent.BEFORE_READ,
    HookEvent.AFTER_READ,
    HookEvent.BEFORE_PROCESS,
    HookEvent.AFTER_PROCESS,
}


def logging_hooks(label: str, log: Optional[logging.Logger] = None) -> Hooks:
    """
    Build hooks that log every lifecycle event of a step or job.

    Args:
        label: Human name of what is being processed, e.g. "authors"
        log: Logger to write to (defaults to the "batch" logger)

    Returns:
        Hooks with one logging callback per event
    """
    log = log or logging.getLogger("batch")
    hooks = Hooks()

    def make_callback(event: HookEvent, template: str) -> HookCallback:
        if event in _ERROR_EVENTS:
            level = logging.ERROR
        elif event in _DEBUG_EVENTS:
            level = logging.DEBUG
        else:
            level = logging.INFO

        def log_event(ctx: HookContext):
            if not log.isEnabledFor(level):
                return
            log.log(level, template.format(
                label=label,
                name=ctx.name,
                item=ctx.item,
                result=ctx.result,
                count=len(ctx.items or ()),
                chunk=ctx.chunk,
                error=ctx.error,
            ))

        log_event.__name__ = f"log_{event.value}"
        return log_event

    for event, template in _MESSAGES.items():
        hooks.register(event, make_callback(event, template))
    return hooks
