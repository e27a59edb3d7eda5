"""Tests for boot-marker readiness detection."""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterator

import pytest

from obcontainer.errors import (
    IllegalStateError,
    InvalidConfigurationError,
    ReadinessTimeoutError,
    StreamClosedError,
)
from obcontainer.models import ReadinessState
from obcontainer.readiness import LoggingConsumer, ReadinessDetector


class _RecordingStream:
    def __init__(self, lines: list[str], *, delay: float = 0.0) -> None:
        self._lines = lines
        self._delay = delay
        self.consumed = 0

    def __iter__(self) -> Iterator[str]:
        for line in self._lines:
            if self._delay:
                time.sleep(self._delay)
            self.consumed += 1
            yield line


class _BlockingStream:
    """Never yields until closed."""

    def __init__(self) -> None:
        self.closed = threading.Event()

    def __iter__(self) -> Iterator[str]:
        self.closed.wait(10)
        return
        yield  # pragma: no cover

    def close(self) -> None:
        self.closed.set()


def test_returns_on_fifth_line_without_consuming_more() -> None:
    lines = ["starting", "loading", "bootstrapping", "tenant created", "[ok] boot success! (ready)"]
    stream = _RecordingStream(lines + ["after 1", "after 2"], delay=0.01)
    detector = ReadinessDetector(timeout=5)

    detector.wait_until_ready(stream)

    assert detector.state is ReadinessState.READY
    assert stream.consumed == 5
    assert detector.lines_seen == 5


def test_times_out_at_deadline_when_marker_never_appears() -> None:
    stream = _BlockingStream()
    detector = ReadinessDetector(timeout=0.3)

    started = time.monotonic()
    with pytest.raises(ReadinessTimeoutError):
        detector.wait_until_ready(stream)
    elapsed = time.monotonic() - started

    assert 0.25 <= elapsed < 2.0
    assert detector.state is ReadinessState.TIMED_OUT
    assert stream.closed.is_set()


def test_per_call_timeout_overrides_default() -> None:
    detector = ReadinessDetector(timeout=60)

    started = time.monotonic()
    with pytest.raises(ReadinessTimeoutError):
        detector.wait_until_ready(_BlockingStream(), timeout=0.2)

    assert time.monotonic() - started < 5


def test_stream_closed_before_marker() -> None:
    detector = ReadinessDetector(timeout=5)

    with pytest.raises(StreamClosedError):
        detector.wait_until_ready(iter(["starting", "crashed"]))

    assert detector.state is ReadinessState.STREAM_CLOSED


def test_stream_errors_surface_as_stream_closed() -> None:
    def _broken() -> Iterator[str]:
        yield "starting"
        raise OSError("connection reset")

    detector = ReadinessDetector(timeout=5)

    with pytest.raises(StreamClosedError) as excinfo:
        detector.wait_until_ready(_broken())

    assert isinstance(excinfo.value.__cause__, OSError)


def test_byte_chunks_are_reassembled_into_lines() -> None:
    chunks = [b"first line\nboot suc", b"cess!\n", b"never read\n"]
    seen: list[str] = []
    detector = ReadinessDetector(timeout=5, consumers=[seen.append])

    detector.wait_until_ready(iter(chunks))

    assert seen == ["first line", "boot success!"]


def test_requires_configured_number_of_matches() -> None:
    detector = ReadinessDetector(times=2, timeout=5)

    with pytest.raises(StreamClosedError):
        detector.wait_until_ready(iter(["boot success!", "other"]))


def test_detector_cannot_be_reused() -> None:
    detector = ReadinessDetector(timeout=5)
    detector.wait_until_ready(iter(["boot success!"]))

    with pytest.raises(IllegalStateError):
        detector.wait_until_ready(iter(["boot success!"]))


def test_cancel_interrupts_pending_wait() -> None:
    detector = ReadinessDetector(timeout=30)
    timer = threading.Timer(0.1, detector.cancel)
    timer.start()

    started = time.monotonic()
    try:
        with pytest.raises(ReadinessTimeoutError):
            detector.wait_until_ready(_BlockingStream())
    finally:
        timer.cancel()

    assert time.monotonic() - started < 5
    assert detector.state is ReadinessState.TIMED_OUT


def test_failing_consumer_does_not_break_detection() -> None:
    def _explode(line: str) -> None:
        raise RuntimeError(line)

    detector = ReadinessDetector(timeout=5, consumers=[_explode])

    detector.wait_until_ready(iter(["boot success!"]))

    assert detector.state is ReadinessState.READY


def test_logging_consumer_forwards_lines(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("tests.readiness.output")
    detector = ReadinessDetector(timeout=5, consumers=[LoggingConsumer(logger, prefix="ob| ")])

    with caplog.at_level(logging.INFO, logger="tests.readiness.output"):
        detector.wait_until_ready(iter(["hello", "boot success!"]))

    assert [record.getMessage() for record in caplog.records if record.name == logger.name] == [
        "ob| hello",
        "ob| boot success!",
    ]


@pytest.mark.parametrize("kwargs", [{"times": 0}, {"timeout": 0}, {"timeout": -1}])
def test_rejects_invalid_settings(kwargs: dict[str, float]) -> None:
    with pytest.raises(InvalidConfigurationError):
        ReadinessDetector(**kwargs)  # type: ignore[arg-type]
