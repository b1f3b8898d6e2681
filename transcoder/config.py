"""
Transcoder configuration and audio output presets.

Each preset pins the output codec, bitrate, sample rate, channel count and
container of the relayed stream, so every listener of a running service gets
the same format.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class AudioPreset(str, Enum):
    """Available audio output presets."""

    MP3_128K = "mp3_128k"
    MP3_192K = "mp3_192k"
    MP3_64K_MONO = "mp3_64k_mono"


@dataclass(frozen=True)
class AudioEncoding:
    """Output settings for a specific preset."""

    name: str
    codec: str  # ffmpeg encoder, e.g. "libmp3lame"
    bitrate: str  # e.g. "128k"
    sample_rate: str  # e.g. "44100"
    channels: int
    container: str  # ffmpeg muxer, e.g. "mp3"
    mime_type: str  # Content-Type sent to listeners


AUDIO_PRESETS: Dict[AudioPreset, AudioEncoding] = {
    AudioPreset.MP3_128K: AudioEncoding(
        name="MP3 128 kbps stereo",
        codec="libmp3lame",
        bitrate="128k",
        sample_rate="44100",
        channels=2,
        container="mp3",
        mime_type="audio/mpeg",
    ),
    AudioPreset.MP3_192K: AudioEncoding(
        name="MP3 192 kbps stereo",
        codec="libmp3lame",
        bitrate="192k",
        sample_rate="44100",
        channels=2,
        container="mp3",
        mime_type="audio/mpeg",
    ),
    AudioPreset.MP3_64K_MONO: AudioEncoding(
        name="MP3 64 kbps mono",
        codec="libmp3lame",
        bitrate="64k",
        sample_rate="22050",
        channels=1,
        container="mp3",
        mime_type="audio/mpeg",
    ),
}


class TranscoderConfig(BaseSettings):
    """Transcoder settings from environment variables."""

    ffmpeg_binary: str = Field(
        default="ffmpeg",
        description="Path to FFmpeg binary",
    )

    audio_preset: AudioPreset = Field(
        default=AudioPreset.MP3_128K,
        description="Output audio preset",
    )

    log_level: str = Field(
        default="warning",
        description="FFmpeg log level (quiet, panic, fatal, error, warning, info, verbose, debug)",
    )

    reconnect_delay_max: int = Field(
        default=5,
        description="Maximum delay between upstream reconnect attempts (seconds)",
        ge=1,
        le=60,
    )

    read_chunk_size: int = Field(
        default=8192,
        description="Maximum bytes read from FFmpeg stdout per chunk",
        ge=512,
        le=262144,
    )

    stderr_tail_lines: int = Field(
        default=50,
        description="Number of FFmpeg stderr lines kept for diagnostics",
        ge=5,
        le=1000,
    )

    terminate_timeout: float = Field(
        default=5.0,
        description="Grace period after SIGTERM before SIGKILL (seconds)",
        ge=0.1,
        le=60.0,
    )

    model_config = ConfigDict(
        env_prefix="TRANSCODER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_encoding(self) -> AudioEncoding:
        """Get the output settings for the selected preset."""
        return AUDIO_PRESETS[self.audio_preset]


def get_config() -> TranscoderConfig:
    """
    Get transcoder configuration from environment variables.

    Returns:
        TranscoderConfig: Configuration instance
    """
    return TranscoderConfig()


def list_presets() -> Dict[AudioPreset, str]:
    """
    List all available audio presets.

    Returns:
        Dict mapping preset enum to human-readable name
    """
    return {preset: encoding.name for preset, encoding in AUDIO_PRESETS.items()}
