"""State-machine based recognition session management.

``RecognitionSessionManager`` owns one speech engine handle and turns its raw
events into a small lifecycle: ``IDLE -> REQUESTING_PERMISSION -> LISTENING ->
STOPPING -> IDLE``, with ``ERRORED`` and ``RESTART_PENDING`` as detours.

Engines report an ``aborted`` error both when the caller asked them to stop
and when they crash, so every intentional stop raises ``suppress_errors``
before touching the engine. Aborts seen while the flag is up are dropped.

Everything runs on one asyncio loop. ``start()`` suspends while the
microphone is probed and for a short settle delay; ``stop()`` and
``dispose()`` never suspend.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Coroutine, Optional

from errors import EngineAlreadyStarted, ErrorKind, map_engine_error, message_for
from interfaces import MicrophoneProbe, SpeechEngine
from models import EngineEvent, SessionState

logger = logging.getLogger(__name__)

ResultCallback = Callable[[str], None]
ErrorCallback = Callable[[ErrorKind, str], None]
StateCallback = Callable[[SessionState, SessionState], None]
InterimCallback = Callable[[str], None]

_PENDING_STATES = (SessionState.REQUESTING_PERMISSION, SessionState.RESTART_PENDING)
_BUSY_STATES = _PENDING_STATES + (SessionState.LISTENING, SessionState.STOPPING)
_RESULT_STATES = (SessionState.LISTENING, SessionState.STOPPING)


class RecognitionSessionManager:
    def __init__(
        self,
        engine: Optional[SpeechEngine],
        microphone: Optional[MicrophoneProbe] = None,
        settle_delay_s: float = 0.1,
        restart_delay_s: float = 0.2,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        on_interim: Optional[InterimCallback] = None,
    ) -> None:
        self._engine = engine
        self._microphone = microphone
        self._settle_delay_s = settle_delay_s
        self._restart_delay_s = restart_delay_s
        self._on_result = on_result
        self._on_error = on_error
        self._on_state_change = on_state_change
        self._on_interim = on_interim

        self._state = SessionState.IDLE
        self._final_parts: list[str] = []
        self._interim = ""
        self._suppress_errors = False
        self._restart_handle: Optional[asyncio.TimerHandle] = None
        self._restart_attempted = False
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._disposed = False

        if engine is not None:
            engine.on(EngineEvent.START.value, self._handle_start)
            engine.on(EngineEvent.PARTIAL.value, self._handle_partial)
            engine.on(EngineEvent.FINAL.value, self._handle_final)
            engine.on(EngineEvent.ERROR.value, self._handle_error)
            engine.on(EngineEvent.END.value, self._handle_end)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_supported(self) -> bool:
        return self._engine is not None

    @property
    def is_listening(self) -> bool:
        return self._state == SessionState.LISTENING

    @property
    def is_starting(self) -> bool:
        return self._state in _PENDING_STATES

    @property
    def final_transcript(self) -> str:
        return " ".join(self._final_parts)

    @property
    def interim_transcript(self) -> str:
        return self._interim

    @property
    def suppress_errors(self) -> bool:
        return self._suppress_errors

    @property
    def restart_pending(self) -> bool:
        return self._state == SessionState.RESTART_PENDING

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._engine is None or self._disposed:
            return
        if self._state in _BUSY_STATES:
            logger.warning("start ignored: session is %s", self._state.value)
            return
        self._restart_attempted = False
        await self._activate()

    def stop(self) -> None:
        if self._engine is None or self._disposed:
            return
        if self._state in _PENDING_STATES:
            logger.info("stop requested before the engine started, cancelling")
            self._generation += 1
            self._suppress_errors = True
            self._cancel_restart_timer()
            self._transition(SessionState.IDLE)
            return
        if self._state != SessionState.LISTENING:
            logger.warning("stop ignored: session is %s", self._state.value)
            return

        self._suppress_errors = True
        self._transition(SessionState.STOPPING)
        try:
            self._engine.stop()
        except Exception as exc:
            # No end event will follow a failed stop.
            logger.warning("engine stop failed: %s", exc)
            self._transition(SessionState.IDLE)
            return
        logger.info("speech recognition stopping")

    def reset_transcript(self) -> None:
        self._final_parts = []
        self._set_interim("")

    def dispose(self) -> None:
        """Tear down synchronously; safe to call repeatedly or before any start."""
        if self._disposed:
            return
        self._disposed = True
        self._suppress_errors = True
        self._generation += 1
        self._cancel_restart_timer()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._safe_abort()
        self._interim = ""
        self._state = SessionState.IDLE

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    async def _activate(self) -> None:
        self._generation += 1
        generation = self._generation
        self._transition(SessionState.REQUESTING_PERMISSION)

        if self._microphone is not None:
            try:
                await self._microphone.probe()
            except Exception as exc:
                if not self._is_current(generation):
                    return
                logger.warning("microphone probe failed: %s", exc)
                self._suppress_errors = False
                self._fail(ErrorKind.PERMISSION_DENIED)
                return
        if not self._is_current(generation):
            logger.info("start cancelled during permission probe")
            return

        # Clear any stale engine activity; its abort and end events are noise.
        self._suppress_errors = True
        self._safe_abort()
        await asyncio.sleep(self._settle_delay_s)
        if not self._is_current(generation):
            logger.info("start cancelled during settle delay")
            return

        self._suppress_errors = False
        try:
            self._engine.start()
        except EngineAlreadyStarted:
            self._handle_conflict()
            return
        except Exception as exc:
            logger.warning("engine start failed: %s", exc)
            self._fail(ErrorKind.UNKNOWN)
            return
        logger.info("speech recognition starting")

    def _is_current(self, generation: int) -> bool:
        return (
            not self._disposed
            and generation == self._generation
            and self._state == SessionState.REQUESTING_PERMISSION
        )

    def _handle_conflict(self) -> None:
        if self._restart_attempted:
            logger.warning("engine still busy after restart, giving up")
            self._fail(ErrorKind.SERVICE_UNAVAILABLE)
            return
        logger.info("engine already running, restarting in %.2fs", self._restart_delay_s)
        self._restart_attempted = True
        self._suppress_errors = True
        self._transition(SessionState.RESTART_PENDING)
        self._cancel_restart_timer()
        loop = asyncio.get_running_loop()
        # Scheduled before stopping so an immediate end event can take over.
        self._restart_handle = loop.call_later(self._restart_delay_s, self._fire_restart)
        self._safe_stop()

    def _fire_restart(self) -> None:
        self._restart_handle = None
        if self._disposed or self._state != SessionState.RESTART_PENDING:
            return
        self._spawn(self._restart(self._generation))

    async def _restart(self, generation: int) -> None:
        # stop() or dispose() may land between scheduling and running.
        if self._disposed or generation != self._generation:
            return
        if self._state != SessionState.RESTART_PENDING:
            return
        await self._activate()

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_restart_timer(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def _handle_start(self) -> None:
        if self._disposed:
            return
        self._suppress_errors = False
        self._restart_attempted = False
        self._cancel_restart_timer()
        self._transition(SessionState.LISTENING)
        logger.info("speech recognition listening")

    def _handle_partial(self, text: str) -> None:
        if self._disposed or self._state not in _RESULT_STATES:
            return
        self._set_interim(text or "")

    def _handle_final(self, text: str) -> None:
        if self._disposed or self._state not in _RESULT_STATES:
            return
        self._set_interim("")
        fragment = (text or "").strip()
        if not fragment:
            return
        self._final_parts.append(fragment)
        if self._on_result:
            self._on_result(self.final_transcript)

    def _handle_error(self, code: str, message: str = "") -> None:
        if self._disposed:
            return
        kind = map_engine_error(code, message)
        self._set_interim("")
        if kind == ErrorKind.ENGINE_CONFLICT:
            if self._state in (SessionState.REQUESTING_PERMISSION, SessionState.LISTENING):
                self._handle_conflict()
            else:
                logger.debug("engine conflict ignored in state %s", self._state.value)
            return
        if kind == ErrorKind.ABORTED and self._suppress_errors:
            logger.debug("suppressed engine abort during shutdown")
            return
        logger.warning("speech engine error %r: %s", code, message)
        self._fail(kind)

    def _handle_end(self) -> None:
        if self._disposed:
            return
        self._set_interim("")
        if self._state == SessionState.RESTART_PENDING:
            self._cancel_restart_timer()
            self._spawn(self._restart(self._generation))
            return
        self._cancel_restart_timer()
        if self._state == SessionState.REQUESTING_PERMISSION:
            # End of the stale handle aborted during activation.
            return
        self._transition(SessionState.IDLE)
        logger.info("speech recognition ended")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _fail(self, kind: ErrorKind) -> None:
        self._transition(SessionState.ERRORED)
        if self._on_error:
            self._on_error(kind, message_for(kind))
        self._transition(SessionState.IDLE)

    def _set_interim(self, text: str) -> None:
        if text == self._interim:
            return
        self._interim = text
        if self._on_interim:
            self._on_interim(text)

    def _safe_stop(self) -> None:
        try:
            self._engine.stop()
        except Exception as exc:
            logger.warning("engine stop failed: %s", exc)

    def _safe_abort(self) -> None:
        if self._engine is None:
            return
        try:
            self._engine.abort()
        except Exception as exc:
            logger.debug("engine abort failed: %s", exc)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if to_state in (SessionState.IDLE, SessionState.ERRORED):
            self._set_interim("")
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
