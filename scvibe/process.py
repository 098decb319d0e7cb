from __future__ import annotations

import asyncio
import enum
import logging
import re
import shlex
from collections.abc import Callable, Sequence

from .errors import EngineBootError, TeardownError
from .logging_utils import setup_file_logger

_LOGGER = logging.getLogger("scvibe.process")

# ``None`` is delivered once when the process output ends.
LineListener = Callable[[str | None], None]


class LineStatus(enum.IntEnum):
    CONTINUE = 0
    READY = 1
    ERROR = 2


class EngineProcess:
    """An external engine process whose merged output is read line by line."""

    def __init__(
        self,
        name: str,
        command: Sequence[str],
        *,
        ready_pattern: re.Pattern[str],
        error_pattern: re.Pattern[str] | None = None,
        log_dir: str | None = None,
        stdin: bool = False,
    ) -> None:
        self.name = name
        self.command = list(command)
        self._ready_pattern = ready_pattern
        self._error_pattern = error_pattern
        self._log_dir = log_dir
        self._stdin = stdin
        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task[None] | None = None
        self._ready: asyncio.Future[None] | None = None
        self._listeners: list[LineListener] = []
        self._output_logger = logging.getLogger(f"scvibe.output.{name}")
        self._error_text = ""

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def add_listener(self, listener: LineListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: LineListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _parse_line(self, line: str) -> LineStatus:
        if self._ready_pattern.search(line):
            return LineStatus.READY
        if self._error_pattern is not None and self._error_pattern.search(line):
            return LineStatus.ERROR
        return LineStatus.CONTINUE

    async def start(self) -> None:
        setup_file_logger(
            self._output_logger.name,
            f"{self.name}-output.log",
            log_dir=self._log_dir,
            propagate=False,
        )
        _LOGGER.info("[%s] command: %s", self.name, shlex.join(self.command))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE if self._stdin else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise EngineBootError(f"{self.name} could not be launched: {exc}") from exc
        self._ready = asyncio.get_running_loop().create_future()
        self._reader = asyncio.create_task(self._pump())
        try:
            await self._ready
        except BaseException:
            await self.stop()
            raise
        _LOGGER.info("[%s] ready (pid %s)", self.name, self.pid)

    async def _pump(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        while True:
            raw = await stdout.readline()
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            self._output_logger.info(line)
            self._resolve_boot(line)
            for listener in list(self._listeners):
                listener(line)
        for listener in list(self._listeners):
            listener(None)
        returncode = await self._process.wait()
        _LOGGER.info("[%s] process exited with %s", self.name, returncode)
        if self._ready is not None and not self._ready.done():
            detail = f": {self._error_text}" if self._error_text else ""
            self._ready.set_exception(
                EngineBootError(f"{self.name} exited with {returncode} before it was ready{detail}")
            )

    def _resolve_boot(self, line: str) -> None:
        if self._ready is None or self._ready.done():
            return
        status = self._parse_line(line)
        if status == LineStatus.READY:
            self._ready.set_result(None)
        elif status == LineStatus.ERROR:
            self._error_text = line
            self._ready.set_exception(EngineBootError(f"{self.name} failed to boot: {line}"))

    async def write(self, text: str) -> None:
        if self._process is None or self._process.stdin is None:
            raise EngineBootError(f"{self.name} has no input pipe")
        self._process.stdin.write(text.encode("utf-8"))
        await self._process.stdin.drain()

    async def stop(self, timeout: float = 2.0) -> None:
        process = self._process
        if process is None:
            return
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout)
            except asyncio.TimeoutError:
                _LOGGER.warning("[%s] did not exit after terminate; killing", self.name)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                try:
                    await asyncio.wait_for(process.wait(), timeout)
                except asyncio.TimeoutError as exc:
                    raise TeardownError(f"{self.name} (pid {process.pid}) did not exit") from exc
        if self._reader is not None:
            try:
                await asyncio.wait_for(self._reader, timeout)
            except asyncio.TimeoutError:
                _LOGGER.warning("[%s] output reader did not finish", self.name)
            self._reader = None
