"""Tests for companion.media.audio."""

import httpx
import pytest

from companion.core.errors import InvalidInputError, ProviderError
from companion.media.audio import DEFAULT_AUDIO_TYPE, guess_audio_type, load_audio


class TestGuessAudioType:

    @pytest.mark.parametrize("locator,expected", [
        ("rec.m4a", "audio/mp4"),
        ("file:///var/mobile/rec.caf", "audio/x-caf"),
        ("https://cdn.example.com/a.webm?sig=1", "audio/webm"),
        ("voice.ogg", "audio/ogg"),
        ("clip.mp3", "audio/mpeg"),
        ("noext", DEFAULT_AUDIO_TYPE),
        ("notes.txt", DEFAULT_AUDIO_TYPE),
    ])
    def test_guess(self, locator, expected):
        assert guess_audio_type(locator) == expected


class TestLoadAudio:

    async def test_bytes_pass_through(self, make_transport):
        transport, recorder = make_transport(lambda req: httpx.Response(200))

        data, content_type = await load_audio(b"RIFF", transport, 5)

        assert data == b"RIFF"
        assert content_type == "audio/wav"
        assert recorder.call_count == 0

    async def test_empty_bytes_rejected(self, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(200))
        with pytest.raises(InvalidInputError):
            await load_audio(b"", transport, 5)

    async def test_local_path(self, tmp_path, make_transport):
        path = tmp_path / "rec.m4a"
        path.write_bytes(b"\x00\x01")
        transport, _ = make_transport(lambda req: httpx.Response(200))

        data, content_type = await load_audio(str(path), transport, 5)

        assert data == b"\x00\x01"
        assert content_type == "audio/mp4"

    async def test_file_uri(self, tmp_path, make_transport):
        path = tmp_path / "grabación.wav"
        path.write_bytes(b"RIFFdata")
        transport, _ = make_transport(lambda req: httpx.Response(200))

        data, content_type = await load_audio(path.as_uri(), transport, 5)

        assert data == b"RIFFdata"
        assert content_type in ("audio/wav", "audio/x-wav")

    async def test_missing_file(self, tmp_path, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(200))

        with pytest.raises(InvalidInputError, match="Audio file not found"):
            await load_audio(str(tmp_path / "missing.wav"), transport, 5)

    async def test_empty_file(self, tmp_path, make_transport):
        path = tmp_path / "empty.wav"
        path.write_bytes(b"")
        transport, _ = make_transport(lambda req: httpx.Response(200))

        with pytest.raises(InvalidInputError, match="Audio is empty"):
            await load_audio(str(path), transport, 5)

    async def test_blank_locator(self, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(200))
        with pytest.raises(InvalidInputError, match="not provided"):
            await load_audio("  ", transport, 5)

    async def test_remote_url(self, make_transport):
        transport, recorder = make_transport(
            lambda req: httpx.Response(200, content=b"OggS", headers={"Content-Type": "audio/ogg; codecs=opus"})
        )

        data, content_type = await load_audio("https://cdn.example.com/rec", transport, 5)

        assert data == b"OggS"
        assert content_type == "audio/ogg"
        assert recorder.requests[0].method == "GET"

    async def test_remote_url_non_audio_header_keeps_guess(self, make_transport):
        transport, _ = make_transport(
            lambda req: httpx.Response(200, content=b"x", headers={"Content-Type": "application/octet-stream"})
        )

        _, content_type = await load_audio("https://cdn.example.com/rec.m4a", transport, 5)

        assert content_type == "audio/mp4"

    async def test_remote_download_failure(self, make_transport):
        transport, _ = make_transport(lambda req: httpx.Response(404))

        with pytest.raises(ProviderError, match="Audio download failed: 404"):
            await load_audio("https://cdn.example.com/rec.wav", transport, 5)
