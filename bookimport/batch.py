"""Chunk-oriented step and job execution."""
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence
import logging
import uuid

from bookimport.hooks import HookEvent, Hooks

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 3


class BatchStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ItemReader(ABC):
    """Yields items one at a time; read() returns None when exhausted."""

    def open(self):
        pass

    def close(self):
        pass

    @abstractmethod
    def read(self) -> Optional[Any]:
        """Return the next item, or None at end of input."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ItemProcessor(ABC):
    """Transforms one item. Returning None filters the item out."""

    def open(self):
        """Called once at step start."""

    def close(self):
        """Called once at step end, even on failure."""

    @abstractmethod
    def process(self, item: Any) -> Optional[Any]:
        """Return the output for an item, or None to drop it."""


class ItemWriter(ABC):
    """Persists one chunk of processed items."""

    @abstractmethod
    def write(self, items: List[Any]):
        """Write a non-empty chunk."""


@dataclass
class StepExecution:
    """Counters and outcome of one step run."""
    step_name: str
    status: BatchStatus = BatchStatus.NOT_STARTED
    read_count: int = 0
    filter_count: int = 0
    write_count: int = 0
    commit_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    failure: Optional[BaseException] = None


@dataclass
class JobExecution:
    """Outcome of one job run."""
    job_name: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: BatchStatus = BatchStatus.NOT_STARTED
    current_step: Optional[str] = None
    step_executions: List[StepExecution] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    failure: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.status == BatchStatus.COMPLETED

    def step(self, name: str) -> Optional[StepExecution]:
        for execution in self.step_executions:
            if execution.step_name == name:
                return execution
        return None


class Step:
    """
    Read-process-write loop over fixed-size chunks.

    Each execution opens a fresh reader, so a step always consumes its input
    from the start. The first error aborts the chunk and fails the step;
    chunks written before it stay written.
    """

    def __init__(
        self,
        name: str,
        reader_factory: Callable[[], ItemReader],
        processor: ItemProcessor,
        writer: ItemWriter,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        hooks: Optional[Hooks] = None,
        max_workers: int = 1
    ):
        """
        Initialize step.

        Args:
            name: Step name
            reader_factory: Builds a new reader for every execution
            processor: Item processor
            writer: Chunk writer
            chunk_size: Items per chunk
            hooks: Lifecycle hooks
            max_workers: Threads processing items of a chunk (1 = sequential)
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.name = name
        self.reader_factory = reader_factory
        self.processor = processor
        self.writer = writer
        self.chunk_size = chunk_size
        self.hooks = hooks or Hooks()
        self.max_workers = max_workers

    def execute(self, job_execution: Optional[JobExecution] = None) -> StepExecution:
        """Run the step to completion, raising the first error."""
        execution = StepExecution(step_name=self.name)
        if job_execution is not None:
            job_execution.step_executions.append(execution)

        execution.status = BatchStatus.RUNNING
        execution.start_time = datetime.now()
        self.hooks.fire(HookEvent.BEFORE_STEP, self.name, execution=execution)

        pool = None
        try:
            self.processor.open()
            if self.max_workers > 1:
                pool = ThreadPoolExecutor(max_workers=self.max_workers)
            with self.reader_factory() as reader:
                chunk = 0
                while self._run_chunk(reader, execution, chunk, pool):
                    chunk += 1
            execution.status = BatchStatus.COMPLETED
        except Exception as e:
            execution.status = BatchStatus.FAILED
            execution.failure = e
            raise
        finally:
            if pool is not None:
                pool.shutdown(wait=True)
            self.processor.close()
            execution.end_time = datetime.now()
            self.hooks.fire(HookEvent.AFTER_STEP, self.name, execution=execution)

        return execution

    def _run_chunk(self, reader: ItemReader, execution: StepExecution, chunk: int,
                   pool: Optional[ThreadPoolExecutor]) -> bool:
        """Run one chunk; False once the reader is exhausted."""
        self.hooks.fire(HookEvent.BEFORE_CHUNK, self.name, chunk=chunk)
        try:
            items = self._read_chunk(reader, execution)
            if not items:
                self.hooks.fire(HookEvent.AFTER_CHUNK, self.name, chunk=chunk)
                return False

            outputs = self._process_chunk(items, execution, pool)
            if outputs:
                self._write_chunk(outputs, execution)
            execution.commit_count += 1
        except Exception as e:
            self.hooks.fire(HookEvent.CHUNK_ERROR, self.name, chunk=chunk, error=e)
            raise

        self.hooks.fire(HookEvent.AFTER_CHUNK, self.name, chunk=chunk)
        return len(items) == self.chunk_size

    def _read_chunk(self, reader: ItemReader, execution: StepExecution) -> List[Any]:
        items = []
        while len(items) < self.chunk_size:
            self.hooks.fire(HookEvent.BEFORE_READ, self.name)
            try:
                item = reader.read()
            except Exception as e:
                self.hooks.fire(HookEvent.READ_ERROR, self.name, error=e)
                raise
            if item is None:
                break
            execution.read_count += 1
            self.hooks.fire(HookEvent.AFTER_READ, self.name, item=item)
            items.append(item)
        return items

    def _process_item(self, item: Any) -> Optional[Any]:
        self.hooks.fire(HookEvent.BEFORE_PROCESS, self.name, item=item)
        try:
            result = self.processor.process(item)
        except Exception as e:
            self.hooks.fire(HookEvent.PROCESS_ERROR, self.name, item=item, error=e)
            raise
        self.hooks.fire(HookEvent.AFTER_PROCESS, self.name, item=item, result=result)
        return result

    def _process_chunk(self, items: Sequence[Any], execution: StepExecution,
                       pool: Optional[ThreadPoolExecutor]) -> List[Any]:
        if pool is not None:
            # map() re-raises the first failing item's exception in input order
            results = list(pool.map(self._process_item, items))
        else:
            results = [self._process_item(item) for item in items]

        outputs = [result for result in results if result is not None]
        execution.filter_count += len(results) - len(outputs)
        return outputs

    def _write_chunk(self, items: List[Any], execution: StepExecution):
        self.hooks.fire(HookEvent.BEFORE_WRITE, self.name, items=items)
        try:
            self.writer.write(items)
        except Exception as e:
            self.hooks.fire(HookEvent.WRITE_ERROR, self.name, items=items, error=e)
            raise
        execution.write_count += len(items)
        self.hooks.fire(HookEvent.AFTER_WRITE, self.name, items=items)


class Job:
    """Runs steps strictly in order; the first failing step fails the job."""

    def __init__(self, name: str, steps: Sequence[Step], hooks: Optional[Hooks] = None):
        self.name = name
        self.steps = list(steps)
        self.hooks = hooks or Hooks()

    def run(self, run_id: Optional[str] = None) -> JobExecution:
        """
        Execute every step.

        Returns:
            JobExecution with status COMPLETED or FAILED; errors are recorded
            on it rather than raised
        """
        execution = JobExecution(job_name=self.name)
        if run_id:
            execution.run_id = run_id

        execution.status = BatchStatus.RUNNING
        execution.start_time = datetime.now()
        logger.info(f"Job {self.name} started (run {execution.run_id})")
        self.hooks.fire(HookEvent.BEFORE_JOB, self.name, execution=execution)

        try:
            for step in self.steps:
                execution.current_step = step.name
                step.execute(execution)
            execution.current_step = None
            execution.status = BatchStatus.COMPLETED
        except Exception as e:
            execution.status = BatchStatus.FAILED
            execution.failure = e
            logger.error(f"Job {self.name} failed in step {execution.current_step}: {e}")
        finally:
            execution.end_time = datetime.now()
            self.hooks.fire(HookEvent.AFTER_JOB, self.name, execution=execution)

        logger.info(f"Job {self.name} finished with status {execution.status.value}")
        return execution
