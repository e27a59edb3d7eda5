"""Boot-marker detection over the instance's output stream."""

from __future__ import annotations

import codecs
import logging
import re
import threading
import time
from typing import Callable, Iterable

from .errors import IllegalStateError, InvalidConfigurationError, ReadinessTimeoutError, StreamClosedError
from .models import BOOT_SUCCESS_PATTERN, DEFAULT_STARTUP_TIMEOUT, ReadinessState

LOG = logging.getLogger(__name__)

OutputConsumer = Callable[[str], None]
OutputStream = Iterable[str] | Iterable[bytes]

MAX_PARTIAL_LINE = 64 * 1024


class LoggingConsumer:
    """Output consumer that forwards instance lines to a logger."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        *,
        level: int = logging.INFO,
        prefix: str = "",
    ) -> None:
        self._logger = logger or logging.getLogger("obcontainer.output")
        self._level = level
        self._prefix = prefix

    def __call__(self, line: str) -> None:
        self._logger.log(self._level, "%s%s", self._prefix, line)


class ReadinessDetector:
    """Blocks until the output stream reports a successful boot.

    The stream is consumed on a daemon reader thread while the caller waits on
    an event with a deadline. ``str`` items are treated as complete lines
    (several lines per item are split); ``bytes`` items are treated as raw
    chunks, decoded incrementally with only the trailing partial line kept.

    A detector serves exactly one wait; reuse raises ``IllegalStateError``.
    """

    def __init__(
        self,
        pattern: str | re.Pattern[str] = BOOT_SUCCESS_PATTERN,
        *,
        times: int = 1,
        timeout: float = DEFAULT_STARTUP_TIMEOUT,
        consumers: Iterable[OutputConsumer] = (),
    ) -> None:
        if times < 1:
            raise InvalidConfigurationError("Readiness match count must be at least 1")
        if timeout <= 0:
            raise InvalidConfigurationError("Startup timeout must be positive")
        self._pattern = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._times = times
        self._timeout = timeout
        self._consumers: list[OutputConsumer] = list(consumers)
        self._state = ReadinessState.NOT_STARTED
        self._state_lock = threading.Lock()
        self._done = threading.Event()
        self._cancelled = False
        self._matches = 0
        self._lines_seen = 0
        self._failure: BaseException | None = None

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def pattern(self) -> re.Pattern[str]:
        return self._pattern

    @property
    def lines_seen(self) -> int:
        """Number of output lines observed so far."""

        return self._lines_seen

    def add_consumer(self, consumer: OutputConsumer) -> None:
        """Receive every observed output line (until readiness)."""

        self._consumers.append(consumer)

    def cancel(self) -> None:
        """Abort a pending wait from another thread."""

        self._cancelled = True
        self._done.set()

    def wait_until_ready(self, output: OutputStream, timeout: float | None = None) -> None:
        """Consume ``output`` until the boot marker has been seen ``times`` times.

        Raises ``ReadinessTimeoutError`` when the deadline passes (or the wait is
        cancelled) and ``StreamClosedError`` when the stream ends first.
        """

        deadline = self._timeout if timeout is None else timeout
        if deadline <= 0:
            raise InvalidConfigurationError("Startup timeout must be positive")
        with self._state_lock:
            if self._state is not ReadinessState.NOT_STARTED:
                raise IllegalStateError(f"Readiness wait already performed (state: {self._state.value})")
            self._state = ReadinessState.WAITING

        stop = threading.Event()
        reader = threading.Thread(
            target=self._read,
            args=(output, stop),
            name="obcontainer-readiness",
            daemon=True,
        )
        started = time.monotonic()
        LOG.debug("Waiting for boot marker", extra={"pattern": self._pattern.pattern, "timeout": deadline})
        reader.start()
        finished = self._done.wait(deadline)
        elapsed = time.monotonic() - started

        if finished and self._matches >= self._times:
            reader.join(timeout=1)
            self._transition(ReadinessState.READY)
            LOG.info("Instance reported boot success", extra={"elapsed": round(elapsed, 3)})
            return

        stop.set()
        if finished and not self._cancelled:
            self._transition(ReadinessState.STREAM_CLOSED)
            message = f"Output stream ended after {self._lines_seen} line(s) without matching '{self._pattern.pattern}'"
            raise StreamClosedError(message) from self._failure

        self._close_stream(output)
        self._transition(ReadinessState.TIMED_OUT)
        if self._cancelled:
            raise ReadinessTimeoutError(f"Readiness wait cancelled after {elapsed:.1f}s")
        raise ReadinessTimeoutError(
            f"Boot marker '{self._pattern.pattern}' not observed within {deadline:g}s"
        )

    def _read(self, output: OutputStream, stop: threading.Event) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        partial = ""
        try:
            for chunk in output:
                if stop.is_set():
                    return
                if isinstance(chunk, (bytes, bytearray)):
                    lines, partial = self._split_chunk(partial + decoder.decode(bytes(chunk)))
                else:
                    lines = str(chunk).splitlines() or [""]
                for line in lines:
                    if self._observe(line):
                        return
                if partial and (self._pattern.match(partial) or len(partial) > MAX_PARTIAL_LINE):
                    line, partial = partial, ""
                    if self._observe(line):
                        return
            tail = partial + decoder.decode(b"", final=True)
            if tail and self._observe(tail):
                return
        except Exception as exc:
            if not stop.is_set():
                LOG.debug("Output stream raised", exc_info=True)
                self._failure = exc
        finally:
            self._done.set()

    def _observe(self, line: str) -> bool:
        line = line.rstrip("\r\n")
        self._lines_seen += 1
        for consumer in tuple(self._consumers):
            try:
                consumer(line)
            except Exception:
                LOG.exception("Output consumer failed", extra={"consumer": repr(consumer)})
        if self._pattern.match(line):
            self._matches += 1
            if self._matches >= self._times:
                self._done.set()
                return True
        return False

    @staticmethod
    def _split_chunk(text: str) -> tuple[list[str], str]:
        pieces = text.split("\n")
        return pieces[:-1], pieces[-1]

    @staticmethod
    def _close_stream(output: OutputStream) -> None:
        close = getattr(output, "close", None)
        if not callable(close):
            return
        try:
            close()
        except Exception:
            LOG.debug("Failed to close output stream", exc_info=True)

    def _transition(self, state: ReadinessState) -> None:
        with self._state_lock:
            self._state = state


__all__ = ["LoggingConsumer", "OutputConsumer", "OutputStream", "ReadinessDetector"]
