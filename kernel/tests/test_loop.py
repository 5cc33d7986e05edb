"""Tests for kernel/loop.py -- run loop control flow."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest

from domain.models import Document, ProcessOutcome, VerdictStatus
from kernel.context import RunContext
from kernel.loop import run_verification
from modules.runner.core import ToolchainMissingError

JVM_STDERR = 'Exception in thread "main" java.lang.IllegalStateException: boom\n'


def _kotlin_doc(block_factory, path: str, names: list[str], package: str | None = None):
    blocks = tuple(
        block_factory(
            f"// Chapter/{name}.kt\nfun main() {{\n  println(\"{name}\")\n}}\n",
            document=path,
            index=i,
            line=1 + i * 10,
            label=f"Chapter/{name}.kt",
            package=package,
            expected=name,
        )
        for i, name in enumerate(names)
    )
    return Document(path=path, blocks=blocks)


def _echo_main(argv: list[str], cwd: str) -> ProcessOutcome:
    """Run command prints the simple name of the main class minus 'Kt'."""
    if argv[0] == "kotlin":
        name = argv[-1].rsplit(".", 1)[-1].removesuffix("Kt")
        if name.startswith("Fail"):
            return ProcessOutcome(exit_code=1, stdout="", stderr=JVM_STDERR)
        return ProcessOutcome(exit_code=0, stdout=f"{name}\n", stderr="")
    return ProcessOutcome(exit_code=0, stdout="", stderr="")


@pytest.fixture
def echo_process(process_factory):
    return process_factory(handler=_echo_main)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_every_block_gets_a_verdict(block_factory, settings_factory, echo_process) -> None:
    docs = [
        _kotlin_doc(block_factory, "Lambdas.md", ["Alpha", "Beta", "Gamma"]),
        _kotlin_doc(block_factory, "Basics.md", ["Delta"]),
    ]
    ctx = RunContext(settings=settings_factory(workers=4), process=echo_process)

    report = run_verification(docs, ctx)

    assert (report.total, report.passed, report.failed) == (4, 4, 0)
    assert not report.cancelled
    assert [d.path for d in report.documents] == ["Basics.md", "Lambdas.md"]
    assert len(ctx.results()) == 4


def test_report_does_not_depend_on_worker_count(
    block_factory, settings_factory, process_factory
) -> None:
    names = ["Alpha", "FailBeta", "Gamma", "Delta", "FailEpsilon"]
    docs = [_kotlin_doc(block_factory, "Lambdas.md", names)]

    def run(workers: int):
        ctx = RunContext(
            settings=settings_factory(workers=workers),
            process=process_factory(handler=_echo_main),
        )
        return run_verification(docs, ctx)

    serial, parallel = run(1), run(4)

    assert serial == parallel
    assert [v.block.index for v in serial.failures] == [1, 4]


def test_package_group_runs_in_declaration_order(
    block_factory, settings_factory, echo_process
) -> None:
    doc = _kotlin_doc(block_factory, "Objects.md", ["One", "Two", "Three"], package="objects")
    ctx = RunContext(settings=settings_factory(workers=4), process=echo_process)

    report = run_verification([doc], ctx)

    assert report.passed == 3
    runs = [call[-1] for call in echo_process.calls if call[0] == "kotlin"]
    assert runs == ["objects.OneKt", "objects.TwoKt", "objects.ThreeKt"]
    assert sum(1 for call in echo_process.calls if call[0] == "kotlinc") == 1


def test_non_executable_blocks_are_skipped_without_running(
    block_factory, settings, fake_process
) -> None:
    doc = Document(
        path="Prose.md",
        blocks=(
            block_factory(document="Prose.md", index=0, executable=False, skip_reason="no label"),
            block_factory(document="Prose.md", index=1, executable=False, skip_reason="skip"),
        ),
    )
    on_verdict = MagicMock()

    ctx = RunContext(settings=settings, process=fake_process)

    report = run_verification([doc], ctx, on_verdict=on_verdict)

    assert report.skipped == 2
    assert fake_process.calls == []
    assert on_verdict.call_count == 2


def test_on_verdict_sees_every_judged_block(block_factory, settings, echo_process) -> None:
    doc = _kotlin_doc(block_factory, "Lambdas.md", ["Alpha", "FailBeta"])
    seen: list[tuple[str, VerdictStatus]] = []
    lock = threading.Lock()

    def on_verdict(block, verdict) -> None:
        with lock:
            seen.append((block.id, verdict.status))

    ctx = RunContext(settings=settings, process=echo_process)
    run_verification([doc], ctx, on_verdict=on_verdict)

    assert sorted(seen) == [
        ("Lambdas.md#0", VerdictStatus.PASS),
        ("Lambdas.md#1", VerdictStatus.FAIL),
    ]


def test_fail_fast_cancels_remaining_units(
    block_factory, settings_factory, echo_process
) -> None:
    doc = _kotlin_doc(block_factory, "Lambdas.md", ["FailFirst", "Second", "Third"])
    ctx = RunContext(settings=settings_factory(workers=1, fail_fast=True), process=echo_process)

    report = run_verification([doc], ctx)

    assert report.cancelled
    assert report.failed == 1
    assert report.not_run == ("Lambdas.md#1", "Lambdas.md#2")
    assert [call[-1] for call in echo_process.calls if call[0] == "kotlin"] == ["FailFirstKt"]


def test_without_fail_fast_everything_runs(block_factory, settings_factory, echo_process) -> None:
    doc = _kotlin_doc(block_factory, "Lambdas.md", ["FailFirst", "Second", "Third"])
    ctx = RunContext(settings=settings_factory(workers=1), process=echo_process)

    report = run_verification([doc], ctx)

    assert not report.cancelled
    assert (report.passed, report.failed) == (2, 1)


def test_cancelled_run_keeps_earlier_verdicts(
    block_factory, settings_factory, process_factory
) -> None:
    doc = _kotlin_doc(block_factory, "Lambdas.md", ["First", "Second", "Third"])
    ctx = RunContext(settings=settings_factory(workers=1), process=process_factory())

    def cancel_after_first(argv: list[str], cwd: str) -> ProcessOutcome:
        if argv[0] == "kotlin":
            ctx.cancel.set()
            return ProcessOutcome(exit_code=0, stdout="First\n", stderr="")
        return ProcessOutcome(exit_code=0, stdout="", stderr="")

    ctx.process = process_factory(handler=cancel_after_first)

    report = run_verification([doc], ctx)

    assert report.cancelled
    assert report.passed == 1
    assert report.not_run == ("Lambdas.md#1", "Lambdas.md#2")


def test_missing_toolchain_aborts_before_running(
    block_factory, settings, process_factory
) -> None:
    process = process_factory(missing=["kotlinc"])
    doc = _kotlin_doc(block_factory, "Lambdas.md", ["Alpha"])

    with pytest.raises(ToolchainMissingError):
        run_verification([doc], RunContext(settings=settings, process=process))
    assert process.calls == []


def test_units_run_concurrently(block_factory, settings_factory, process_factory) -> None:
    """Four one-second sleeps on four workers finish well under four seconds."""

    def slow(argv: list[str], cwd: str) -> ProcessOutcome:
        if argv[0] == "kotlin":
            time.sleep(1.0)
            name = argv[-1].removesuffix("Kt")
            return ProcessOutcome(exit_code=0, stdout=f"{name}\n", stderr="")
        return ProcessOutcome(exit_code=0, stdout="", stderr="")

    doc = _kotlin_doc(block_factory, "Slow.md", ["A", "B", "C", "D"])
    ctx = RunContext(settings=settings_factory(workers=4), process=process_factory(handler=slow))

    start = time.monotonic()
    report = run_verification([doc], ctx)

    assert report.passed == 4
    assert time.monotonic() - start < 3.5


# ---------------------------------------------------------------------------
# RunContext
# ---------------------------------------------------------------------------


def test_run_context_snapshots_are_copies(settings, fake_process, result_factory) -> None:
    from domain.models import ComparisonVerdict

    ctx = RunContext(settings=settings, process=fake_process)
    verdict = ComparisonVerdict(block_id="Basics.md#0", status=VerdictStatus.PASS)
    ctx.record(result_factory(), verdict)

    snapshot = ctx.verdicts()
    snapshot.clear()

    assert ctx.verdicts() == {"Basics.md#0": verdict}
    assert list(ctx.results()) == ["Basics.md#0"]
    assert not ctx.cancelled
