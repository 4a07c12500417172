"""Tests for chunk synthesis."""

from unittest.mock import patch, MagicMock

import pytest
from pydub import AudioSegment

from audio_tour.tts import chunk_filename, generate_single, generate_tts


def _make_mock_communicate(spoken=None):
    """Create a mock edge_tts.Communicate that writes a tiny WAV."""
    def factory(text, voice, **kwargs):
        if spoken is not None:
            spoken.append((text, voice, kwargs))
        mock = MagicMock()
        async def save(path):
            AudioSegment.silent(duration=100).export(path, format="wav")
        mock.save = save
        return mock
    return factory


@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_generate_single(mock_comm, tmp_path):
    """Single TTS file created at specified path."""
    output = tmp_path / "test.mp3"
    mock_comm.side_effect = _make_mock_communicate()
    generate_single("Hello world, welcome aboard.", "en-US-AriaNeural", str(output))
    assert output.exists()
    assert output.stat().st_size > 0


@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_sends_sanitized_text(mock_comm, tmp_path):
    """Markup never reaches the provider."""
    spoken = []
    mock_comm.side_effect = _make_mock_communicate(spoken)
    generate_single(
        "Welcome to **the harbour** at https://x.com today!!",
        "en-US-AriaNeural",
        str(tmp_path / "a.mp3"),
        rate="-10%",
    )
    assert spoken == [("Welcome to the harbour at today!", "en-US-AriaNeural", {"rate": "-10%"})]


@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_rejects_short_text(mock_comm, tmp_path):
    """Text under 10 characters after cleaning is never sent."""
    with pytest.raises(ValueError, match="too short"):
        generate_single("<b>Hi</b> \U0001F600", "en-US-AriaNeural", str(tmp_path / "a.mp3"))
    mock_comm.assert_not_called()


@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_caps_provider_length(mock_comm, tmp_path):
    spoken = []
    mock_comm.side_effect = _make_mock_communicate(spoken)
    generate_single("word " * 2000, "en-US-AriaNeural", str(tmp_path / "a.mp3"))
    assert len(spoken[0][0]) <= 4000


@patch("audio_tour.tts.time.sleep")
@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_generate_single_retry(mock_comm, mock_sleep, tmp_path):
    """Retry works when first attempt fails."""
    output = tmp_path / "test.mp3"
    call_count = 0

    def fail_then_succeed(text, voice, **kwargs):
        nonlocal call_count
        call_count += 1
        mock = MagicMock()
        if call_count == 1:
            async def fail_save(path):
                raise Exception("Network error")
            mock.save = fail_save
        else:
            async def ok_save(path):
                AudioSegment.silent(duration=100).export(path, format="wav")
            mock.save = ok_save
        return mock

    mock_comm.side_effect = fail_then_succeed
    generate_single("Hello and welcome.", "en-US-AriaNeural", str(output))
    assert output.exists()
    assert call_count == 2
    mock_sleep.assert_called_once_with(1.0)


@patch("audio_tour.tts.time.sleep")
@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_retry_exhausted(mock_comm, mock_sleep, tmp_path):
    """Raises after all retries exhausted."""
    def always_fail(text, voice, **kwargs):
        mock = MagicMock()
        async def fail_save(path):
            raise Exception("Permanent failure")
        mock.save = fail_save
        return mock

    mock_comm.side_effect = always_fail
    output = tmp_path / "fail.mp3"
    with pytest.raises(Exception, match="Permanent failure"):
        generate_single("Hello and welcome.", "en-US-AriaNeural", str(output))
    assert mock_comm.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]


@patch("audio_tour.tts.time.sleep")
@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_validates_output_size(mock_comm, mock_sleep, tmp_path):
    """0-byte output treated as failure."""
    call_count_outer = [0]

    def write_empty(text, voice, **kwargs):
        mock = MagicMock()
        async def save(path):
            call_count_outer[0] += 1
            if call_count_outer[0] <= 2:
                open(path, "w").close()  # 0-byte file
            else:
                AudioSegment.silent(duration=100).export(path, format="wav")
        mock.save = save
        return mock

    mock_comm.side_effect = write_empty
    output = tmp_path / "test.mp3"
    generate_single("Hello and welcome.", "en-US-AriaNeural", str(output))
    assert output.stat().st_size > 0


def test_chunk_filename():
    assert chunk_filename(0) == "chunk_000.mp3"
    assert chunk_filename(42) == "chunk_042.mp3"


@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_generates_files(mock_comm, tmp_path):
    """N files created in output directory, in chunk order."""
    mock_comm.side_effect = _make_mock_communicate()
    seg_dir = tmp_path / "segments"
    seg_dir.mkdir()
    paths = generate_tts(["First stop, the harbour.", "Second stop, the mill."], str(seg_dir))
    assert [p.rsplit("/", 1)[-1] for p in paths] == ["chunk_000.mp3", "chunk_001.mp3"]
    assert len(list(seg_dir.glob("*.mp3"))) == 2


@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_skips_existing(mock_comm, tmp_path, capsys):
    """Already generated chunks are reused."""
    spoken = []
    mock_comm.side_effect = _make_mock_communicate(spoken)
    seg_dir = tmp_path / "segments"
    seg_dir.mkdir()
    (seg_dir / "chunk_000.mp3").write_bytes(b"existing")

    generate_tts(["First stop, the harbour.", "Second stop, the mill."], str(seg_dir))
    assert [s[0] for s in spoken] == ["Second stop, the mill."]
    assert "[skip]" in capsys.readouterr().out


@patch("audio_tour.tts.edge_tts.Communicate")
def test_tts_progress_output(mock_comm, tmp_path, capsys):
    """Chunk counter appears in stdout."""
    mock_comm.side_effect = _make_mock_communicate()
    seg_dir = tmp_path / "segments"
    seg_dir.mkdir()
    generate_tts(["Line one is here.", "Line two is here."], str(seg_dir), voice="en-GB-RyanNeural")
    captured = capsys.readouterr()
    assert "1/2" in captured.out
    assert "2/2" in captured.out
