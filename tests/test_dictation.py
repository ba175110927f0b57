from __future__ import annotations

import asyncio

import pytest

from dictation import STARTED_MESSAGE, STOPPED_MESSAGE, DictationAdapter
from errors import ErrorKind, message_for
from fakes import FakeEngine, FakeMicrophone, wait_for
from models import AccumulationMode, DictationStatus, RecognitionConfig, SessionState


def _adapter(
    engine: FakeEngine | None,
    append_mode: bool = True,
    microphone: FakeMicrophone | None = None,
) -> tuple[DictationAdapter, list[str], list[tuple[DictationStatus, str]]]:
    transcripts: list[str] = []
    statuses: list[tuple[DictationStatus, str]] = []
    adapter = DictationAdapter(
        engine,
        on_transcript=transcripts.append,
        on_status=lambda status, detail: statuses.append((status, detail)),
        config=RecognitionConfig(append_mode=append_mode),
        microphone=microphone or FakeMicrophone(),
        settle_delay_s=0,
        restart_delay_s=0.01,
    )
    return adapter, transcripts, statuses


@pytest.mark.asyncio
async def test_append_mode_joins_fragments_with_space() -> None:
    engine = FakeEngine()
    adapter, transcripts, _ = _adapter(engine)

    await adapter.toggle()
    engine.emit("final", "hello")
    engine.emit("final", "world")

    assert adapter.mode == AccumulationMode.APPEND
    assert transcripts == ["hello", "hello world"]
    assert adapter.text == "hello world"


@pytest.mark.asyncio
async def test_append_mode_same_text_from_one_event() -> None:
    engine = FakeEngine()
    adapter, transcripts, _ = _adapter(engine)

    await adapter.toggle()
    engine.emit("final", "hello world")

    assert transcripts == ["hello world"]


@pytest.mark.asyncio
async def test_append_mode_keeps_text_across_turns() -> None:
    engine = FakeEngine()
    adapter, transcripts, _ = _adapter(engine)

    await adapter.toggle()
    engine.emit("final", "hello")
    await adapter.toggle()
    assert adapter.state == SessionState.IDLE

    await adapter.toggle()
    engine.emit("final", "world")

    assert transcripts[-1] == "hello world"


@pytest.mark.asyncio
async def test_replace_mode_keeps_latest_fragment() -> None:
    engine = FakeEngine()
    adapter, transcripts, _ = _adapter(engine, append_mode=False)

    await adapter.toggle()
    engine.emit("final", "first")
    engine.emit("final", "second")

    assert adapter.mode == AccumulationMode.REPLACE
    assert transcripts == ["first", "second"]
    assert adapter.text == "second"


@pytest.mark.asyncio
async def test_replace_mode_discards_previous_turn() -> None:
    engine = FakeEngine()
    adapter, transcripts, _ = _adapter(engine, append_mode=False)

    await adapter.toggle()
    engine.emit("final", "first")
    await adapter.toggle()
    await adapter.toggle()
    assert adapter.text == ""
    engine.emit("final", "second")

    assert transcripts[-1] == "second"


@pytest.mark.asyncio
async def test_reset_then_final_has_no_leftover_prefix() -> None:
    engine = FakeEngine()
    adapter, transcripts, _ = _adapter(engine)

    await adapter.toggle()
    engine.emit("final", "old words")
    adapter.reset()
    engine.emit("final", "test")

    assert transcripts[-1] == "test"
    assert adapter.text == "test"


@pytest.mark.asyncio
async def test_toggle_reports_started_once_then_stopped() -> None:
    engine = FakeEngine()
    adapter, _, statuses = _adapter(engine)

    await adapter.toggle()
    assert adapter.is_listening is True
    await adapter.toggle()

    assert statuses == [
        (DictationStatus.STARTED, STARTED_MESSAGE),
        (DictationStatus.STOPPED, STOPPED_MESSAGE),
    ]
    assert adapter.is_listening is False


@pytest.mark.asyncio
async def test_toggle_during_permission_check_cancels_without_stopped_status() -> None:
    engine = FakeEngine()
    gate = asyncio.Event()
    microphone = FakeMicrophone(gate=gate)
    adapter, _, statuses = _adapter(engine, microphone=microphone)

    pending = asyncio.create_task(adapter.toggle())
    await wait_for(lambda: microphone.calls == 1)
    await adapter.toggle()
    gate.set()
    await pending

    assert "start" not in engine.calls
    assert statuses == []
    assert adapter.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_started_status_not_repeated_after_restart() -> None:
    engine = FakeEngine()
    adapter, _, statuses = _adapter(engine)

    await adapter.toggle()
    engine.emit("error", "already-started", "")
    await wait_for(lambda: adapter.is_listening and engine.start_calls == 2)

    assert statuses == [(DictationStatus.STARTED, STARTED_MESSAGE)]


@pytest.mark.asyncio
async def test_engine_error_is_reported_as_status() -> None:
    engine = FakeEngine()
    adapter, transcripts, statuses = _adapter(engine)

    await adapter.toggle()
    engine.emit("error", "no-speech", "")

    assert statuses[-1] == (DictationStatus.ERROR, message_for(ErrorKind.NO_SPEECH))
    assert transcripts == []
    assert adapter.state == SessionState.IDLE

    await adapter.toggle()
    assert adapter.is_listening is True


@pytest.mark.asyncio
async def test_interim_transcript_is_exposed_for_preview() -> None:
    engine = FakeEngine()
    adapter, transcripts, _ = _adapter(engine)

    await adapter.toggle()
    engine.emit("partial", "typing with my vo")

    assert adapter.interim_transcript == "typing with my vo"
    assert transcripts == []


@pytest.mark.asyncio
async def test_unsupported_engine_signals_once() -> None:
    adapter, transcripts, statuses = _adapter(None)

    await adapter.toggle()
    await adapter.toggle()
    adapter.dispose()

    assert adapter.is_supported is False
    assert statuses == [(DictationStatus.ERROR, message_for(ErrorKind.UNSUPPORTED))]
    assert transcripts == []


@pytest.mark.asyncio
async def test_dispose_aborts_and_ignores_late_events() -> None:
    engine = FakeEngine()
    adapter, transcripts, statuses = _adapter(engine)

    await adapter.toggle()
    adapter.dispose()
    engine.emit("final", "too late")

    assert engine.calls[-1] == "abort"
    assert transcripts == []
    assert adapter.text == ""
    assert statuses == [(DictationStatus.STARTED, STARTED_MESSAGE)]
