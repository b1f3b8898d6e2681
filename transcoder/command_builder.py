"""
FFmpeg command builder.

Constructs the argument list for one relay: read a (possibly segmented)
upstream stream with auto-reconnect, drop video, re-encode audio, and write
the result to stdout with minimal buffering.
"""

import logging
from typing import List, Optional

from transcoder.config import AudioEncoding, TranscoderConfig

logger = logging.getLogger(__name__)


class FFmpegCommandBuilder:
    """
    Builds FFmpeg commands that relay an upstream URL to ``pipe:1``.
    """

    def __init__(self, config: TranscoderConfig):
        """
        Initialize command builder.

        Args:
            config: Transcoder configuration
        """
        self.config = config
        self.encoding: AudioEncoding = config.get_encoding()

    def build_command(self, source_url: str) -> List[str]:
        """
        Build complete FFmpeg command for one relay.

        Args:
            source_url: Upstream media URL (HLS playlist or direct stream)

        Returns:
            List of command arguments for subprocess

        Raises:
            ValueError: If source_url is empty
        """
        if not source_url or not source_url.strip():
            raise ValueError("source_url cannot be empty")

        cmd = [self.config.ffmpeg_binary]
        cmd.extend(self._build_global_options())
        cmd.extend(self._build_input(source_url.strip()))
        cmd.extend(self._build_audio_encoding())
        cmd.extend(self._build_output_options())

        logger.debug(f"Built FFmpeg command: {' '.join(cmd)}")
        return cmd

    def _build_global_options(self) -> List[str]:
        """Build global FFmpeg options."""
        return [
            "-hide_banner",
            "-nostats",  # Progress lines would flood the stderr tail
            "-loglevel",
            self.config.log_level,
        ]

    def _build_input(self, source_url: str) -> List[str]:
        """Build input options with network auto-reconnect."""
        return [
            "-reconnect", "1",
            "-reconnect_streamed", "1",
            "-reconnect_delay_max", str(self.config.reconnect_delay_max),
            "-i", source_url,
        ]

    def _build_audio_encoding(self) -> List[str]:
        """Build audio-only encoding options."""
        enc = self.encoding
        return [
            "-vn",  # No video passthrough
            "-acodec", enc.codec,
            "-ab", enc.bitrate,
            "-ar", enc.sample_rate,
            "-ac", str(enc.channels),
        ]

    def _build_output_options(self) -> List[str]:
        """Build low-latency output options."""
        return [
            "-f", self.encoding.container,
            "-fflags", "+nobuffer+discardcorrupt",
            "-flags", "low_delay",
            "-flush_packets", "1",
            "pipe:1",
        ]

    @property
    def mime_type(self) -> str:
        """Content type of the produced stream."""
        return self.encoding.mime_type


def create_command_builder(config: Optional[TranscoderConfig] = None) -> FFmpegCommandBuilder:
    """
    Factory function to create a command builder.

    Args:
        config: Optional transcoder configuration (creates default if not provided)

    Returns:
        FFmpegCommandBuilder instance
    """
    if config is None:
        from transcoder.config import get_config
        config = get_config()

    return FFmpegCommandBuilder(config)
