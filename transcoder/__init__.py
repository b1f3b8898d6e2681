"""
Transcoder

FFmpeg process supervision for the radio relay: builds the relay command,
spawns one process per listener, streams its output and keeps a diagnostic
tail of its stderr.
"""

__version__ = "1.0.0"

from transcoder.command_builder import FFmpegCommandBuilder
from transcoder.config import AudioPreset, TranscoderConfig
from transcoder.log_parser import TranscoderLogParser
from transcoder.process_manager import (
    ProcessState,
    SpawnFailure,
    TranscodeHandle,
    TranscoderSupervisor,
)

__all__ = [
    "AudioPreset",
    "FFmpegCommandBuilder",
    "ProcessState",
    "SpawnFailure",
    "TranscodeHandle",
    "TranscoderConfig",
    "TranscoderLogParser",
    "TranscoderSupervisor",
]
