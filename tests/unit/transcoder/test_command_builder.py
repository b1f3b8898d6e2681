"""
Tests for the FFmpeg relay command builder.
"""

import pytest

from transcoder.command_builder import FFmpegCommandBuilder, create_command_builder
from transcoder.config import AudioPreset, TranscoderConfig


class TestFFmpegCommandBuilder:
    """Test FFmpeg command builder."""

    def test_initialization(self, transcoder_config: TranscoderConfig):
        """Test command builder initialization."""
        builder = FFmpegCommandBuilder(transcoder_config)

        assert builder.config == transcoder_config
        assert builder.encoding.codec == "libmp3lame"
        assert builder.mime_type == "audio/mpeg"

    def test_build_command_structure(self, transcoder_config: TranscoderConfig):
        """Test the command starts with the binary and writes to stdout."""
        builder = FFmpegCommandBuilder(transcoder_config)
        cmd = builder.build_command("http://upstream.test/live.m3u8")

        assert cmd[0] == "ffmpeg"
        assert cmd[-1] == "pipe:1"
        assert cmd[cmd.index("-i") + 1] == "http://upstream.test/live.m3u8"

    def test_reconnect_options_precede_input(self, transcoder_config: TranscoderConfig):
        """Test that reconnect options apply to the input."""
        cmd = FFmpegCommandBuilder(transcoder_config).build_command("http://upstream.test/a")

        input_index = cmd.index("-i")
        assert cmd.index("-reconnect") < input_index
        assert cmd[cmd.index("-reconnect") + 1] == "1"
        assert cmd[cmd.index("-reconnect_streamed") + 1] == "1"
        assert cmd[cmd.index("-reconnect_delay_max") + 1] == "5"

    def test_audio_only_mp3_output(self, transcoder_config: TranscoderConfig):
        """Test that video is dropped and audio is encoded as MP3."""
        cmd = FFmpegCommandBuilder(transcoder_config).build_command("http://upstream.test/a")

        assert "-vn" in cmd
        assert cmd[cmd.index("-acodec") + 1] == "libmp3lame"
        assert cmd[cmd.index("-ab") + 1] == "128k"
        assert cmd[cmd.index("-ar") + 1] == "44100"
        assert cmd[cmd.index("-ac") + 1] == "2"
        assert cmd[cmd.index("-f") + 1] == "mp3"

    def test_low_latency_flags(self, transcoder_config: TranscoderConfig):
        """Test output flags that keep buffering minimal."""
        cmd = FFmpegCommandBuilder(transcoder_config).build_command("http://upstream.test/a")

        assert cmd[cmd.index("-fflags") + 1] == "+nobuffer+discardcorrupt"
        assert cmd[cmd.index("-flags") + 1] == "low_delay"
        assert cmd[cmd.index("-flush_packets") + 1] == "1"

    def test_global_options(self):
        """Test log level and quiet options."""
        config = TranscoderConfig(log_level="error")
        cmd = FFmpegCommandBuilder(config).build_command("http://upstream.test/a")

        assert "-hide_banner" in cmd
        assert "-nostats" in cmd
        assert cmd[cmd.index("-loglevel") + 1] == "error"

    def test_mono_preset(self):
        """Test building with the low bitrate mono preset."""
        config = TranscoderConfig(audio_preset=AudioPreset.MP3_64K_MONO)
        cmd = FFmpegCommandBuilder(config).build_command("http://upstream.test/a")

        assert cmd[cmd.index("-ab") + 1] == "64k"
        assert cmd[cmd.index("-ar") + 1] == "22050"
        assert cmd[cmd.index("-ac") + 1] == "1"

    def test_custom_binary(self):
        """Test a custom FFmpeg binary path."""
        config = TranscoderConfig(ffmpeg_binary="/opt/ffmpeg/bin/ffmpeg")
        cmd = FFmpegCommandBuilder(config).build_command("http://upstream.test/a")

        assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"

    def test_source_url_is_stripped(self, transcoder_config: TranscoderConfig):
        """Test surrounding whitespace is removed from the source URL."""
        cmd = FFmpegCommandBuilder(transcoder_config).build_command("  http://upstream.test/a \n")

        assert cmd[cmd.index("-i") + 1] == "http://upstream.test/a"

    @pytest.mark.parametrize("url", ["", "   "])
    def test_empty_source_url_rejected(self, transcoder_config: TranscoderConfig, url: str):
        """Test that an empty source URL raises ValueError."""
        builder = FFmpegCommandBuilder(transcoder_config)

        with pytest.raises(ValueError, match="source_url"):
            builder.build_command(url)


class TestCreateCommandBuilder:
    """Test command builder factory."""

    def test_with_config(self, transcoder_config: TranscoderConfig):
        """Test factory with explicit config."""
        builder = create_command_builder(transcoder_config)

        assert builder.config is transcoder_config

    def test_with_environment(self, monkeypatch):
        """Test factory loading config from environment."""
        monkeypatch.setenv("TRANSCODER_AUDIO_PRESET", "mp3_192k")

        builder = create_command_builder()

        assert builder.encoding.bitrate == "192k"
