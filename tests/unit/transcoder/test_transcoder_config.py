"""
Tests for transcoder configuration.
"""

import pytest
from pydantic import ValidationError

from transcoder.config import (
    AUDIO_PRESETS,
    AudioPreset,
    TranscoderConfig,
    get_config,
    list_presets,
)


class TestAudioPresets:
    """Test audio preset table."""

    def test_every_preset_has_encoding(self):
        """Test that every enum member maps to an encoding."""
        for preset in AudioPreset:
            assert preset in AUDIO_PRESETS

    def test_presets_produce_mpeg_audio(self):
        """Test that all presets produce MP3 for listeners."""
        for encoding in AUDIO_PRESETS.values():
            assert encoding.container == "mp3"
            assert encoding.mime_type == "audio/mpeg"

    def test_list_presets(self):
        """Test human-readable preset listing."""
        presets = list_presets()

        assert presets[AudioPreset.MP3_128K] == "MP3 128 kbps stereo"
        assert len(presets) == len(AudioPreset)


class TestTranscoderConfig:
    """Test TranscoderConfig settings."""

    def test_defaults(self):
        """Test default configuration values."""
        config = TranscoderConfig()

        assert config.ffmpeg_binary == "ffmpeg"
        assert config.audio_preset == AudioPreset.MP3_128K
        assert config.reconnect_delay_max == 5
        assert config.read_chunk_size == 8192
        assert config.stderr_tail_lines == 50
        assert config.terminate_timeout == 5.0

    def test_get_encoding(self):
        """Test resolving the selected preset."""
        config = TranscoderConfig(audio_preset=AudioPreset.MP3_192K)

        assert config.get_encoding().bitrate == "192k"

    def test_from_environment(self, monkeypatch):
        """Test loading values from TRANSCODER_ variables."""
        monkeypatch.setenv("TRANSCODER_FFMPEG_BINARY", "/usr/local/bin/ffmpeg")
        monkeypatch.setenv("TRANSCODER_READ_CHUNK_SIZE", "4096")
        monkeypatch.setenv("TRANSCODER_TERMINATE_TIMEOUT", "2.5")

        config = get_config()

        assert config.ffmpeg_binary == "/usr/local/bin/ffmpeg"
        assert config.read_chunk_size == 4096
        assert config.terminate_timeout == 2.5

    @pytest.mark.parametrize(
        "field,value",
        [
            ("reconnect_delay_max", 0),
            ("reconnect_delay_max", 61),
            ("read_chunk_size", 100),
            ("stderr_tail_lines", 1),
            ("terminate_timeout", 0),
        ],
    )
    def test_out_of_range_values_rejected(self, field: str, value):
        """Test that validation rejects out-of-range values."""
        with pytest.raises(ValidationError):
            TranscoderConfig(**{field: value})

    def test_invalid_preset_rejected(self):
        """Test that unknown presets are rejected."""
        with pytest.raises(ValidationError):
            TranscoderConfig(audio_preset="flac_lossless")
