"""Tests for the chunk/step/job engine."""
import pytest

from bookimport.batch import BatchStatus, ItemProcessor, ItemReader, ItemWriter, Job, Step
from bookimport.hooks import HookEvent, Hooks, logging_hooks


class ListReader(ItemReader):
    def __init__(self, items, fail_at=None):
        self.items = list(items)
        self.fail_at = fail_at
        self.position = 0
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True

    def close(self):
        self.closed = True

    def read(self):
        if self.fail_at is not None and self.position == self.fail_at:
            raise ValueError("bad row")
        if self.position >= len(self.items):
            return None
        item = self.items[self.position]
        self.position += 1
        return item


class DoubleOddProcessor(ItemProcessor):
    """Doubles odd numbers and filters even ones."""

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.opened = 0
        self.closed = 0

    def open(self):
        self.opened += 1

    def close(self):
        self.closed += 1

    def process(self, item):
        if item == self.fail_on:
            raise ValueError(f"cannot process {item}")
        return item * 2 if item % 2 else None


class RecordingWriter(ItemWriter):
    def __init__(self, fail=False):
        self.chunks = []
        self.fail = fail

    def write(self, items):
        if self.fail:
            raise IOError("store down")
        self.chunks.append(list(items))


def make_step(items, name="numbers", reader_fail_at=None, fail_on=None, writer=None, **kwargs):
    readers = []

    def reader_factory():
        reader = ListReader(items, fail_at=reader_fail_at)
        readers.append(reader)
        return reader

    step = Step(name, reader_factory, DoubleOddProcessor(fail_on), writer or RecordingWriter(), **kwargs)
    return step, readers


def recorder(hooks, events):
    log = []
    for event in events:
        hooks.register(event, lambda ctx: log.append((ctx.event, ctx.chunk)))
    return log


def test_step_writes_in_chunks_of_three():
    step, readers = make_step([1, 3, 5, 7, 9, 11, 13])

    execution = step.execute()

    assert step.writer.chunks == [[2, 6, 10], [14, 18, 22], [26]]
    assert execution.status == BatchStatus.COMPLETED
    assert execution.read_count == 7
    assert execution.write_count == 7
    assert execution.commit_count == 3
    assert readers[0].opened and readers[0].closed


def test_filtered_items_are_not_written():
    step, _ = make_step([1, 2, 4, 6, 3])

    execution = step.execute()

    assert step.writer.chunks == [[2], [6]]
    assert execution.filter_count == 3
    assert execution.write_count == 2


def test_chunk_with_nothing_to_write_skips_writer():
    step, _ = make_step([2, 4, 6])
    step.execute()
    assert step.writer.chunks == []


def test_each_execution_rereads_input():
    step, readers = make_step([1, 3])

    step.execute()
    step.execute()

    assert len(readers) == 2
    assert step.writer.chunks == [[2, 6], [2, 6]]
    assert step.processor.opened == 2
    assert step.processor.closed == 2


def test_chunk_size_is_configurable():
    step, _ = make_step([1, 3, 5, 7, 9], chunk_size=2)
    step.execute()
    assert step.writer.chunks == [[2, 6], [10, 14], [18]]


def test_invalid_chunk_size():
    with pytest.raises(ValueError):
        make_step([1], chunk_size=0)


def test_concurrent_processing_keeps_order():
    step, _ = make_step(list(range(1, 20, 2)), max_workers=4)
    execution = step.execute()
    assert [x for chunk in step.writer.chunks for x in chunk] == [x * 2 for x in range(1, 20, 2)]
    assert execution.write_count == 10


def test_process_error_aborts_chunk_after_earlier_chunks_written():
    step, _ = make_step([1, 3, 5, 7, 9], fail_on=7)

    with pytest.raises(ValueError):
        step.execute()

    assert step.writer.chunks == [[2, 6, 10]]
    assert step.processor.closed == 1


def test_hooks_fire_in_lifecycle_order():
    hooks = Hooks()
    log = recorder(hooks, list(HookEvent))
    step, _ = make_step([1], hooks=hooks)

    step.execute()

    assert [event for event, _ in log] == [
        HookEvent.BEFORE_STEP,
        HookEvent.BEFORE_CHUNK,
        HookEvent.BEFORE_READ,
        HookEvent.AFTER_READ,
        HookEvent.BEFORE_READ,
        HookEvent.BEFORE_PROCESS,
        HookEvent.AFTER_PROCESS,
        HookEvent.BEFORE_WRITE,
        HookEvent.AFTER_WRITE,
        HookEvent.AFTER_CHUNK,
        HookEvent.AFTER_STEP,
    ]


def test_error_hooks_fire():
    hooks = Hooks()
    log = recorder(hooks, [HookEvent.READ_ERROR, HookEvent.WRITE_ERROR, HookEvent.CHUNK_ERROR])

    step, _ = make_step([1, 3], reader_fail_at=1, hooks=hooks)
    with pytest.raises(ValueError):
        step.execute()

    step, _ = make_step([1, 3], writer=RecordingWriter(fail=True), hooks=hooks)
    with pytest.raises(IOError):
        step.execute()

    assert [event for event, _ in log] == [
        HookEvent.READ_ERROR,
        HookEvent.CHUNK_ERROR,
        HookEvent.WRITE_ERROR,
        HookEvent.CHUNK_ERROR,
    ]


def test_failing_hook_does_not_change_control_flow():
    hooks = Hooks()

    def broken(ctx):
        raise RuntimeError("hook bug")

    for event in HookEvent:
        hooks.register(event, broken)
    step, _ = make_step([1, 3, 5, 7], hooks=hooks)

    execution = step.execute()

    assert execution.status == BatchStatus.COMPLETED
    assert step.writer.chunks == [[2, 6, 10], [14]]


def test_logging_hooks_log_step_events(caplog):
    step, _ = make_step([1], hooks=logging_hooks("numbers"))

    with caplog.at_level("INFO", logger="batch"):
        step.execute()

    assert "Starting numbers step" in caplog.text
    assert "Wrote 1 numbers" in caplog.text
    assert "Finished numbers step" in caplog.text


def test_job_runs_steps_in_order_and_completes():
    first, _ = make_step([1], name="first")
    second, _ = make_step([3], name="second")
    job = Job("demo", [first, second])

    execution = job.run()

    assert execution.status == BatchStatus.COMPLETED
    assert execution.succeeded
    assert [s.step_name for s in execution.step_executions] == ["first", "second"]
    assert execution.current_step is None
    assert execution.run_id


def test_job_failure_stops_later_steps():
    first, _ = make_step([1, 3], name="first", fail_on=3)
    second, second_readers = make_step([5], name="second")
    job = Job("demo", [first, second])

    execution = job.run()

    assert execution.status == BatchStatus.FAILED
    assert isinstance(execution.failure, ValueError)
    assert execution.current_step == "first"
    assert execution.step("first").status == BatchStatus.FAILED
    assert execution.step("second") is None
    assert second_readers == []


def test_job_hooks_wrap_the_run():
    hooks = Hooks()
    seen = []
    hooks.register(HookEvent.BEFORE_JOB, lambda ctx: seen.append(ctx.execution.status))
    hooks.register(HookEvent.AFTER_JOB, lambda ctx: seen.append(ctx.execution.status))
    step, _ = make_step([1])

    Job("demo", [step], hooks=hooks).run(run_id="run-1")

    assert seen == [BatchStatus.RUNNING, BatchStatus.COMPLETED]
