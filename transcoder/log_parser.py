"""
FFmpeg log parser.

Keeps a bounded tail of FFmpeg stderr for diagnostics and classifies the
lines that explain why an upstream relay failed (expired URLs, unreachable
hosts, undecodable input).
"""

import logging
import re
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """FFmpeg log levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class ErrorType(str, Enum):
    """Types of FFmpeg errors seen while relaying."""

    HTTP_ERROR = "http_error"
    CONNECTION_FAILED = "connection_failed"
    DNS_ERROR = "dns_error"
    INVALID_DATA = "invalid_data"
    CODEC_ERROR = "codec_error"
    IO_ERROR = "io_error"
    UNKNOWN = "unknown"


@dataclass
class FFmpegError:
    """Represents an FFmpeg error or warning."""

    timestamp: datetime
    level: LogLevel
    error_type: ErrorType
    message: str
    raw_line: str


class TranscoderLogParser:
    """
    Collects FFmpeg stderr lines into a ring buffer and detects errors.

    Only the last ``max_lines`` lines are retained, so a long-running relay
    never grows its diagnostics without bound.
    """

    ERROR_PATTERNS = {
        # Expired or revoked upstream URLs surface as HTTP 4xx/5xx
        ErrorType.HTTP_ERROR: [
            r"HTTP error \d{3}",
            r"Server returned \d{3}",
            r"Server returned (?:4|5)XX",
            r"403 Forbidden",
            r"404 Not Found",
        ],
        ErrorType.CONNECTION_FAILED: [
            r"Connection (?:refused|timed out|reset)",
            r"Failed to connect",
            r"Unable to connect",
            r"Will reconnect at",
        ],
        ErrorType.DNS_ERROR: [
            r"Failed to resolve hostname",
            r"Name or service not known",
            r"Temporary failure in name resolution",
        ],
        ErrorType.INVALID_DATA: [
            r"Invalid data found when processing input",
            r"Error (?:decoding|while decoding)",
            r"corrupt",
        ],
        ErrorType.CODEC_ERROR: [
            r"Unknown (?:encoder|decoder|codec)",
            r"Encoder not found",
            r"Error (?:initializing|opening) (?:output stream|encoder)",
        ],
        ErrorType.IO_ERROR: [
            r"I/O error",
            r"Input/output error",
            r"Broken pipe",
            r"End of file",
        ],
    }

    COMPILED_PATTERNS: Dict[ErrorType, List[re.Pattern]] = {}

    @classmethod
    def _compile_patterns(cls) -> None:
        """Compile regex patterns for error detection."""
        if not cls.COMPILED_PATTERNS:
            for error_type, patterns in cls.ERROR_PATTERNS.items():
                cls.COMPILED_PATTERNS[error_type] = [
                    re.compile(pattern, re.IGNORECASE) for pattern in patterns
                ]

    def __init__(self, max_lines: int = 50):
        """
        Initialize log parser.

        Args:
            max_lines: Number of stderr lines kept in the tail buffer
        """
        self._compile_patterns()
        self._lines: Deque[str] = deque(maxlen=max_lines)
        self.errors: Deque[FFmpegError] = deque(maxlen=max_lines)
        self.total_lines = 0

    def feed(self, data: bytes) -> Optional[FFmpegError]:
        """
        Decode a raw stderr line and parse it.

        Args:
            data: One line as read from the FFmpeg stderr pipe

        Returns:
            FFmpegError if the line reports an error, None otherwise
        """
        return self.parse_line(data.decode("utf-8", errors="replace"))

    def parse_line(self, line: str) -> Optional[FFmpegError]:
        """
        Parse a single line of FFmpeg output.

        Args:
            line: Line of FFmpeg stderr output

        Returns:
            FFmpegError if an error is detected, None otherwise
        """
        line = line.strip()
        if not line:
            return None

        self._lines.append(line)
        self.total_lines += 1

        error = self._detect_error(line)
        if error:
            self.errors.append(error)
        return error

    def _detect_error(self, line: str) -> Optional[FFmpegError]:
        """Match a line against the known error patterns."""
        for error_type, patterns in self.COMPILED_PATTERNS.items():
            for pattern in patterns:
                if pattern.search(line):
                    return FFmpegError(
                        timestamp=datetime.now(),
                        level=self._get_log_level(line, error_type),
                        error_type=error_type,
                        message=self._extract_error_message(line),
                        raw_line=line,
                    )

        if "error" in line.lower():
            return FFmpegError(
                timestamp=datetime.now(),
                level=self._get_log_level(line, ErrorType.UNKNOWN),
                error_type=ErrorType.UNKNOWN,
                message=self._extract_error_message(line),
                raw_line=line,
            )

        return None

    def _get_log_level(self, line: str, error_type: ErrorType) -> LogLevel:
        """Estimate the severity of a line."""
        line_lower = line.lower()

        if "[fatal]" in line_lower or "fatal" in line_lower:
            return LogLevel.FATAL
        # FFmpeg retries these itself while -reconnect is enabled
        if error_type == ErrorType.CONNECTION_FAILED or "[warning]" in line_lower:
            return LogLevel.WARNING
        return LogLevel.ERROR

    def _extract_error_message(self, line: str) -> str:
        """Strip the ``[demuxer @ 0x...]`` prefix and truncate."""
        message = re.sub(r"^\[[^\]]+\]\s*", "", line)

        if len(message) > 200:
            message = message[:197] + "..."

        return message.strip()

    def tail(self, count: Optional[int] = None) -> List[str]:
        """
        Get the most recent stderr lines.

        Args:
            count: Number of lines (all retained lines if omitted)

        Returns:
            Lines in arrival order
        """
        lines = list(self._lines)
        if count is not None:
            lines = lines[-count:] if count > 0 else []
        return lines

    @property
    def last_error(self) -> Optional[FFmpegError]:
        """Most recent detected error, if any."""
        return self.errors[-1] if self.errors else None

    def get_summary(self) -> Dict:
        """
        Get summary of parsed output.

        Returns:
            Dictionary with line and error counts and the last error
        """
        last = self.last_error
        return {
            "total_lines": self.total_lines,
            "total_errors": len(self.errors),
            "last_error": (
                {"type": last.error_type.value, "message": last.message} if last else None
            ),
        }
