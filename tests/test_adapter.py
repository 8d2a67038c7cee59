from __future__ import annotations

import anyio
import pytest

from botmaid.adapter import (
    ERROR_BUFFER_SIZE,
    TransportError,
    forward_error,
    is_animated,
    is_remote,
    open_pull_streams,
)


@pytest.mark.anyio
async def test_forward_error_drops_when_buffer_is_full() -> None:
    send_updates, send_errors, streams = open_pull_streams()
    errors = [TransportError("getUpdates", f"fail {i}") for i in range(20)]

    for exc in errors:
        forward_error(send_errors, exc)

    received = []
    with pytest.raises(anyio.WouldBlock):
        while True:
            received.append(streams.errors.receive_nowait())

    assert len(received) == ERROR_BUFFER_SIZE
    assert received == errors[:ERROR_BUFFER_SIZE]
    for stream in (send_updates, send_errors, streams.updates, streams.errors):
        await stream.aclose()


@pytest.mark.anyio
async def test_forward_error_tolerates_a_closed_receiver() -> None:
    send_updates, send_errors, streams = open_pull_streams()
    await streams.errors.aclose()

    forward_error(send_errors, TransportError("getUpdates", "down"))

    await send_errors.aclose()
    forward_error(send_errors, TransportError("getUpdates", "down"))
    for stream in (send_updates, streams.updates):
        await stream.aclose()


def test_media_helpers() -> None:
    assert is_remote("https://example.com/a.png")
    assert not is_remote("/tmp/a.png")
    assert is_animated("clip.GIF")
    assert not is_animated("photo.jpg")
