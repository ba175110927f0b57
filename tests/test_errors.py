from __future__ import annotations

import pytest

from errors import ERROR_MESSAGES, ErrorKind, map_engine_error, message_for


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("no-speech", ErrorKind.NO_SPEECH),
        ("audio-capture", ErrorKind.AUDIO_CAPTURE_FAILED),
        ("not-allowed", ErrorKind.PERMISSION_DENIED),
        ("network", ErrorKind.NETWORK_ERROR),
        ("aborted", ErrorKind.ABORTED),
        ("service-not-allowed", ErrorKind.SERVICE_UNAVAILABLE),
        ("already-started", ErrorKind.ENGINE_CONFLICT),
        (" Network ", ErrorKind.NETWORK_ERROR),
        ("bad-grammar", ErrorKind.UNKNOWN),
        ("", ErrorKind.UNKNOWN),
    ],
)
def test_engine_codes_map_to_taxonomy(code: str, expected: ErrorKind) -> None:
    assert map_engine_error(code) == expected


def test_already_started_message_is_a_conflict() -> None:
    kind = map_engine_error("invalid-state", "Failed to execute 'start': recognition has already started.")
    assert kind == ErrorKind.ENGINE_CONFLICT


def test_every_kind_has_a_message() -> None:
    for kind in ErrorKind:
        assert ERROR_MESSAGES[kind]
        assert message_for(kind) == ERROR_MESSAGES[kind]
