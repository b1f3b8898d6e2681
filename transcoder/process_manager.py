"""
FFmpeg process supervisor.

Spawns one FFmpeg process per relay, exposes its stdout as an async byte
stream, keeps a diagnostic tail of its stderr, and guarantees the process is
stopped when the relay ends.
"""

import asyncio
import logging
import weakref
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional

import psutil

from transcoder.command_builder import FFmpegCommandBuilder
from transcoder.config import TranscoderConfig
from transcoder.log_parser import TranscoderLogParser

logger = logging.getLogger(__name__)


class SpawnFailure(Exception):
    """Raised when the FFmpeg process cannot be started at all."""


class ProcessState(str, Enum):
    """FFmpeg process states."""

    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"


class TranscodeHandle:
    """
    Owns exactly one running FFmpeg process.

    ``request_stop()`` and ``terminate()`` are idempotent; calling them after
    the process has exited does nothing. Used as an async context manager the
    handle terminates the process on every exit path.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        station_id: str,
        source_url: str,
        mime_type: str,
        log_parser: TranscoderLogParser,
        terminate_timeout: float = 5.0,
        read_chunk_size: int = 8192,
        on_exit: Optional[Callable[["TranscodeHandle"], None]] = None,
    ):
        """
        Initialize process handle.

        Args:
            process: The asyncio subprocess
            station_id: Station being relayed
            source_url: Upstream URL FFmpeg reads from
            mime_type: Content type of the produced stream
            log_parser: Parser receiving the process stderr
            terminate_timeout: Seconds between SIGTERM and SIGKILL
            read_chunk_size: Maximum bytes per output chunk
            on_exit: Called once with the handle after the process exits
        """
        self.process = process
        self.pid = process.pid
        self.station_id = station_id
        self.source_url = source_url
        self.mime_type = mime_type
        self.log_parser = log_parser
        self.started_at = datetime.now()
        self.state = ProcessState.RUNNING

        self._terminate_timeout = terminate_timeout
        self._read_chunk_size = read_chunk_size
        self._on_exit = on_exit
        self._stop_requested = False
        self._watch_task: Optional[asyncio.Task] = None
        self._kill_task: Optional[asyncio.Task] = None
        self._output_ended = False

    def _start_watching(self) -> None:
        """Start the background task draining stderr and reporting exit."""
        self._watch_task = asyncio.get_running_loop().create_task(self._watch())

    @property
    def is_running(self) -> bool:
        """True until the process has exited."""
        return self.process.returncode is None

    @property
    def returncode(self) -> Optional[int]:
        """Exit code, negative for a signal, None while running."""
        return self.process.returncode

    @property
    def stop_requested(self) -> bool:
        """True once a stop was requested through this handle."""
        return self._stop_requested

    @property
    def output_ended(self) -> bool:
        """True once the process has closed its stdout."""
        return self._output_ended

    @property
    def uptime_seconds(self) -> float:
        """Seconds since the process was spawned."""
        return (datetime.now() - self.started_at).total_seconds()

    async def iter_output(self) -> AsyncIterator[bytes]:
        """
        Yield FFmpeg stdout as it is produced.

        Ends when the process closes its stdout (exit, crash or stop).
        """
        while True:
            chunk = await self.process.stdout.read(self._read_chunk_size)
            if not chunk:
                self._output_ended = True
                return
            yield chunk

    def request_stop(self) -> bool:
        """
        Send SIGTERM now and schedule SIGKILL after the grace period.

        Synchronous so it can run from cancelled tasks and response cleanup.
        Once the process has closed its stdout it is already exiting on its
        own: no SIGTERM is sent and the exit keeps its own classification,
        only the SIGKILL escalation is scheduled in case it lingers.

        Returns:
            True if a signal was sent, False if already stopping or exited
        """
        if self._stop_requested or self.process.returncode is not None:
            return False

        if self._output_ended:
            logger.debug(
                f"Transcoder {self.pid} (station {self.station_id}) closed its output, "
                f"waiting for it to exit"
            )
            self._schedule_kill()
            return False

        self._stop_requested = True
        self.state = ProcessState.STOPPING

        try:
            self.process.terminate()
        except ProcessLookupError:
            logger.debug(f"Process {self.pid} exited before SIGTERM")
            return False

        logger.debug(f"Sent SIGTERM to transcoder {self.pid} (station {self.station_id})")
        self._schedule_kill()
        return True

    def _schedule_kill(self) -> None:
        if self._kill_task is None:
            self._kill_task = asyncio.get_running_loop().create_task(self._kill_after_grace())

    async def _kill_after_grace(self) -> None:
        """Escalate to SIGKILL if the process ignores SIGTERM."""
        try:
            await asyncio.wait_for(self.process.wait(), timeout=self._terminate_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Transcoder {self.pid} did not exit within "
                f"{self._terminate_timeout}s, force killing"
            )
            try:
                self.process.kill()
            except ProcessLookupError:
                pass

    async def terminate(self) -> int:
        """
        Stop the process and wait until it has exited.

        Returns:
            The process exit code
        """
        self.request_stop()
        return await self.wait()

    async def wait(self) -> int:
        """
        Wait for the process to exit and its exit to be recorded.

        Returns:
            The process exit code
        """
        returncode = await self.process.wait()
        if self._watch_task is not None:
            await asyncio.shield(self._watch_task)
        return returncode

    async def _watch(self) -> None:
        """Drain stderr into the tail buffer, then record the exit."""
        await self._drain_stderr()
        returncode = await self.process.wait()

        if returncode == 0:
            self.state = ProcessState.STOPPED
            logger.info(f"Transcoder for station {self.station_id} closed normally")
        elif self._stop_requested:
            self.state = ProcessState.STOPPED
            logger.info(
                f"Transcoder for station {self.station_id} stopped on request "
                f"(code: {returncode})"
            )
        else:
            self.state = ProcessState.CRASHED
            last_lines = "\n".join(self.log_parser.tail(5))
            logger.warning(
                f"Transcoder for station {self.station_id} exited with code {returncode}"
                + (f"; last output:\n{last_lines[:1000]}" if last_lines else "")
            )

        if self._on_exit is not None:
            try:
                self._on_exit(self)
            except Exception as e:
                logger.error(f"Error in transcoder exit callback: {e}", exc_info=True)

    async def _drain_stderr(self) -> None:
        """Read stderr line by line until EOF."""
        stderr = self.process.stderr
        if stderr is None:
            return

        while True:
            try:
                line = await stderr.readline()
            except ValueError:
                # Line longer than the stream limit; the reader already skipped it
                continue
            if not line:
                return
            error = self.log_parser.feed(line)
            if error:
                logger.debug(
                    f"Transcoder {self.pid} {error.level.value} "
                    f"({error.error_type.value}): {error.message}"
                )

    def resource_usage(self) -> Optional[Dict[str, float]]:
        """
        Get CPU and memory usage of the process.

        Returns:
            Dictionary with ``cpu_percent`` and ``memory_mb``, or None if the
            process is gone or not accessible
        """
        if not self.is_running:
            return None
        try:
            proc = psutil.Process(self.pid)
            return {
                "cpu_percent": proc.cpu_percent(interval=None),
                "memory_mb": proc.memory_info().rss / 1024 / 1024,
            }
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None

    def get_status(self) -> Dict:
        """
        Get status information for this process.

        Returns:
            Dictionary with process status information
        """
        return {
            "pid": self.pid,
            "station_id": self.station_id,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": self.uptime_seconds,
            "returncode": self.returncode,
            "resources": self.resource_usage(),
            "log": self.log_parser.get_summary(),
        }

    async def __aenter__(self) -> "TranscodeHandle":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.terminate()


class TranscoderSupervisor:
    """
    Starts and tracks FFmpeg relay processes.

    One process is spawned per ``start()`` call; processes are never shared
    between listeners.
    """

    def __init__(
        self,
        config: Optional[TranscoderConfig] = None,
        command_builder: Optional[FFmpegCommandBuilder] = None,
        on_exit: Optional[Callable[[TranscodeHandle], None]] = None,
    ):
        """
        Initialize supervisor.

        Args:
            config: Transcoder configuration (creates default if not provided)
            command_builder: Command builder instance (creates default if not provided)
            on_exit: Called with each handle after its process exits
        """
        if config is None:
            from transcoder.config import get_config

            config = get_config()

        self.config = config

        if command_builder is None:
            command_builder = FFmpegCommandBuilder(config)

        self.command_builder = command_builder
        self.on_exit = on_exit
        self._handles: "weakref.WeakSet[TranscodeHandle]" = weakref.WeakSet()

        logger.info(
            f"Transcoder supervisor initialized "
            f"(binary: {config.ffmpeg_binary}, preset: {config.audio_preset.value})"
        )

    @property
    def mime_type(self) -> str:
        """Content type of every relayed stream."""
        return self.command_builder.mime_type

    async def start(self, station_id: str, source_url: str) -> TranscodeHandle:
        """
        Spawn an FFmpeg process relaying ``source_url``.

        Args:
            station_id: Station being relayed (for logs and status)
            source_url: Upstream media URL

        Returns:
            Handle owning the new process

        Raises:
            SpawnFailure: If the command is invalid or the binary cannot be executed
        """
        try:
            cmd = self.command_builder.build_command(source_url)
        except ValueError as e:
            raise SpawnFailure(str(e)) from e

        logger.info(f"Starting transcoder for station {station_id}")
        logger.debug(f"Command: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {self.config.ffmpeg_binary}: {e}")
            raise SpawnFailure(f"Failed to start {self.config.ffmpeg_binary}: {e}") from e

        handle = TranscodeHandle(
            process=process,
            station_id=station_id,
            source_url=source_url,
            mime_type=self.mime_type,
            log_parser=TranscoderLogParser(max_lines=self.config.stderr_tail_lines),
            terminate_timeout=self.config.terminate_timeout,
            read_chunk_size=self.config.read_chunk_size,
            on_exit=self.on_exit,
        )
        handle._start_watching()
        self._handles.add(handle)

        logger.info(f"Transcoder started (PID: {handle.pid}, station: {station_id})")
        return handle

    async def stop(self, handle: TranscodeHandle) -> int:
        """
        Stop a relay process and wait for it to exit.

        Args:
            handle: Handle returned by ``start()``

        Returns:
            The process exit code
        """
        return await handle.terminate()

    def active_handles(self) -> List[TranscodeHandle]:
        """
        List handles whose process is still running.

        Returns:
            Running handles
        """
        return [handle for handle in list(self._handles) if handle.is_running]

    async def cleanup(self) -> None:
        """Stop every running process (service shutdown)."""
        handles = self.active_handles()
        if not handles:
            return

        logger.info(f"Stopping {len(handles)} transcoder process(es)")
        results = await asyncio.gather(
            *(handle.terminate() for handle in handles), return_exceptions=True
        )
        for handle, result in zip(handles, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping transcoder {handle.pid}: {result}")

        logger.info("Transcoder cleanup complete")
