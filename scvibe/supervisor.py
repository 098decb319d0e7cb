from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from .engine import EngineHandle, EngineKind
from .errors import EngineBootError, EngineBootTimeout
from .logging_utils import debug_enabled
from .probe import probe_engine
from .reaper import reap_engine_processes
from .settings import EngineSettings
from .stub import StubEngine

_LOGGER = logging.getLogger("scvibe.supervisor")

BootFunction = Callable[[], Awaitable[EngineHandle]]
Reaper = Callable[[], int]

_BINARY_FOR_KIND = {
    EngineKind.INTERPRETER: "sclang",
    EngineKind.RENDERER: "scsynth",
}


class SlotState(str, Enum):
    IDLE = "idle"
    BOOTING = "booting"
    READY = "ready"
    FAILED = "failed"


class EngineSlot:
    """Lazy singleton holder for one engine kind."""

    def __init__(self, kind: EngineKind, *, fallback: bool) -> None:
        self.kind = kind
        self.fallback = fallback
        self.state = SlotState.IDLE
        self.in_flight: asyncio.Task[EngineHandle] | None = None
        self.handle: EngineHandle | None = None
        self.degraded = False

    def reset(self) -> None:
        self.state = SlotState.IDLE
        self.in_flight = None
        self.handle = None
        self.degraded = False

    def __repr__(self) -> str:
        return (
            f"EngineSlot(kind={self.kind.value}, state={self.state.value}, "
            f"degraded={self.degraded})"
        )


def _default_boot(kind: EngineKind, settings: EngineSettings) -> BootFunction:
    if settings.stub_only:

        async def _stub() -> EngineHandle:
            return StubEngine()

        return _stub

    if kind is EngineKind.INTERPRETER:
        from .sclang import SclangEngine

        async def _boot_interpreter() -> EngineHandle:
            return await SclangEngine.boot(settings)

        return _boot_interpreter

    from .scsynth import ScsynthEngine

    async def _boot_renderer() -> EngineHandle:
        return await ScsynthEngine.boot(settings)

    return _boot_renderer


class ProcessSupervisor:
    """Owns the interpreter and renderer engine slots.

    Each slot boots at most once at a time: callers arriving while a boot
    is running await the same task. ``shutdown_all`` puts both slots back
    to idle so the next request boots fresh engines.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        boot_interpreter: BootFunction | None = None,
        boot_renderer: BootFunction | None = None,
        reaper: Reaper | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self._slots = {
            EngineKind.INTERPRETER: EngineSlot(
                EngineKind.INTERPRETER, fallback=self.settings.interpreter_fallback
            ),
            EngineKind.RENDERER: EngineSlot(
                EngineKind.RENDERER, fallback=self.settings.renderer_fallback
            ),
        }
        self._boot_functions = {
            EngineKind.INTERPRETER: boot_interpreter
            or _default_boot(EngineKind.INTERPRETER, self.settings),
            EngineKind.RENDERER: boot_renderer or _default_boot(EngineKind.RENDERER, self.settings),
        }
        self._reaper = reaper or self._reap

    def slot(self, kind: EngineKind) -> EngineSlot:
        return self._slots[kind]

    async def get_interpreter_engine(self) -> EngineHandle:
        return await self._acquire(self._slots[EngineKind.INTERPRETER])

    async def get_renderer_engine(self) -> EngineHandle:
        return await self._acquire(self._slots[EngineKind.RENDERER])

    async def _acquire(self, slot: EngineSlot) -> EngineHandle:
        if slot.state is SlotState.READY and slot.handle is not None:
            return slot.handle
        if slot.in_flight is None:
            slot.state = SlotState.BOOTING
            slot.in_flight = asyncio.get_running_loop().create_task(
                self._boot(slot), name=f"scvibe-boot-{slot.kind.value}"
            )
        return await asyncio.shield(slot.in_flight)

    async def _boot(self, slot: EngineSlot) -> EngineHandle:
        timeout = self.settings.boot_timeout
        _LOGGER.info("Starting %s engine (timeout %.0fs)...", slot.kind.value, timeout)
        try:
            handle = await asyncio.wait_for(self._boot_functions[slot.kind](), timeout)
        except asyncio.CancelledError:
            slot.reset()
            raise
        except Exception as exc:
            error = self._boot_error(slot, exc, timeout)
            _LOGGER.error(
                "%s engine startup failed: %s", slot.kind.value, error, exc_info=debug_enabled()
            )
            probe_engine(_BINARY_FOR_KIND[slot.kind], self._override_path(slot.kind))
            slot.in_flight = None
            if not slot.fallback:
                slot.state = SlotState.FAILED
                if error is exc:
                    raise
                raise error from exc
            _LOGGER.warning(
                "Falling back to stub %s engine; no audio will be produced", slot.kind.value
            )
            slot.handle = StubEngine()
            slot.degraded = True
            slot.state = SlotState.READY
            return slot.handle
        slot.handle = handle
        slot.degraded = False
        slot.state = SlotState.READY
        _LOGGER.info("%s engine startup complete", slot.kind.value)
        return handle

    @staticmethod
    def _boot_error(slot: EngineSlot, exc: Exception, timeout: float) -> EngineBootError:
        if isinstance(exc, asyncio.TimeoutError):
            return EngineBootTimeout(f"{slot.kind.value} engine startup timeout ({timeout:g}s)")
        if isinstance(exc, EngineBootError):
            return exc
        return EngineBootError(f"{slot.kind.value} engine startup error: {exc}")

    def _override_path(self, kind: EngineKind) -> str | None:
        if kind is EngineKind.INTERPRETER:
            return self.settings.sclang_path
        return self.settings.scsynth_path

    async def shutdown_all(self) -> None:
        had_engine = False
        for slot in self._slots.values():
            if slot.state is not SlotState.READY:
                if slot.state is SlotState.FAILED:
                    slot.reset()
                continue
            had_engine = True
            if slot.handle is not None:
                try:
                    await slot.handle.shutdown()
                except Exception as exc:
                    _LOGGER.error(
                        "%s engine termination error: %s",
                        slot.kind.value,
                        exc,
                        exc_info=debug_enabled(),
                    )
            slot.reset()
        if had_engine:
            await self._reap_leftovers()

    async def _reap_leftovers(self) -> None:
        try:
            killed = await asyncio.to_thread(self._reaper)
        except Exception as exc:
            _LOGGER.warning(
                "Could not terminate leftover engine processes: %s", exc, exc_info=debug_enabled()
            )
            return
        if killed:
            _LOGGER.info("Terminated %d leftover engine process(es)", killed)

    def _reap(self) -> int:
        return reap_engine_processes(scope=self.settings.reap_scope)
