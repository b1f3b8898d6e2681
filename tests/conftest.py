"""
Pytest configuration and shared fixtures for all tests.

FFmpeg is never spawned: ``asyncio.create_subprocess_exec`` is replaced by a
``FakeSpawner`` whose processes are backed by ``asyncio.StreamReader``s.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Optional
from unittest.mock import AsyncMock, Mock, patch

import pytest

# Add project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from relay_server.config import RelaySettings  # noqa: E402
from relay_server.directory import StationDirectory  # noqa: E402
from relay_server.resolver import AddressResolver  # noqa: E402
from transcoder.config import TranscoderConfig  # noqa: E402


class FakeProcess:
    """Stand-in for ``asyncio.subprocess.Process``.

    Must be created while an event loop is running.
    """

    def __init__(self, pid: int = 4242, ignore_terminate: bool = False):
        self.pid = pid
        self.returncode: Optional[int] = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self._exited = asyncio.Event()
        self._closing = False
        self._ignore_terminate = ignore_terminate
        self.terminate = Mock(side_effect=self._on_terminate)
        self.kill = Mock(side_effect=lambda: self.finish(-9))

    def _on_terminate(self) -> None:
        if not self._ignore_terminate:
            self.finish(-15)

    def feed_output(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def feed_stderr(self, line: str) -> None:
        self.stderr.feed_data(line.encode("utf-8") + b"\n")

    def finish(self, code: int = 0, exit_delay: Optional[float] = None) -> None:
        """Exit with ``code``, closing both pipes.

        With ``exit_delay`` the pipes reach EOF now and the exit code is only
        reported after the delay, the order a real child process usually shows.
        Signals arriving in between do not change the exit code.
        """
        if self._closing:
            return
        self._closing = True
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        if exit_delay is None:
            self._exit(code)
        else:
            asyncio.get_running_loop().call_later(exit_delay, self._exit, code)

    def _exit(self, code: int) -> None:
        self.returncode = code
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


class FakeSpawner:
    """Replaces ``asyncio.create_subprocess_exec``.

    Attributes:
        calls: Argument lists of every spawn
        processes: Processes handed out, in order
        output: Chunks preloaded into each new process stdout
        stderr_lines: Lines preloaded into each new process stderr
        exit_code: When set, each process exits right after its preloaded output
        exit_delay: Seconds between closing the pipes and reporting ``exit_code``
        error: When set, raised instead of spawning
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self.processes: List[FakeProcess] = []
        self.output: List[bytes] = []
        self.stderr_lines: List[str] = []
        self.exit_code: Optional[int] = None
        self.exit_delay: Optional[float] = None
        self.error: Optional[Exception] = None
        self.ignore_terminate = False

    async def __call__(self, *cmd, **kwargs) -> FakeProcess:
        self.calls.append(list(cmd))
        if self.error is not None:
            raise self.error

        process = FakeProcess(
            pid=40000 + len(self.processes), ignore_terminate=self.ignore_terminate
        )
        for chunk in self.output:
            process.feed_output(chunk)
        for line in self.stderr_lines:
            process.feed_stderr(line)
        if self.exit_code is not None:
            process.finish(self.exit_code, exit_delay=self.exit_delay)

        self.processes.append(process)
        return process

    @property
    def spawn_count(self) -> int:
        return len(self.calls)

    def input_urls(self) -> List[str]:
        """The ``-i`` argument of every spawn."""
        return [cmd[cmd.index("-i") + 1] for cmd in self.calls]


@pytest.fixture
def spawner():
    """Patch subprocess creation with a FakeSpawner."""
    fake = FakeSpawner()
    with patch("asyncio.create_subprocess_exec", new=fake):
        yield fake


@pytest.fixture
def sample_records() -> list:
    """Station snapshot records as written by the catalog crawler."""
    return [
        {
            "id": "42",
            "name": "Test Radio",
            "subtitle": "Always testing",
            "image": "http://img.test/42.png",
            "province": "北京",
            "playUrlLow": None,
            "mp3PlayUrlLow": None,
            "mp3PlayUrlHigh": "http://old/url",
        },
        {
            "id": "1001",
            "name": "中国之声",
            "subtitle": "",
            "image": "",
            "province": "央广",
            "playUrlLow": "http://cached.test/1001.m3u8",
            "mp3PlayUrlLow": "http://cached.test/1001_low.mp3",
            "mp3PlayUrlHigh": "http://cached.test/1001_high.mp3",
        },
        {
            "id": 2002,
            "name": "Shanghai <Music> & Talk",
            "subtitle": None,
            "image": None,
            "province": "上海",
            "playUrlLow": "http://cached.test/2002.m3u8",
            "mp3PlayUrlLow": None,
            "mp3PlayUrlHigh": None,
        },
    ]


@pytest.fixture
def stations_file(tmp_path: Path, sample_records: list) -> Path:
    """Write the sample snapshot to a temporary file."""
    path = tmp_path / "stations.json"
    path.write_text(json.dumps(sample_records, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def directory(stations_file: Path) -> StationDirectory:
    """Directory loaded from the sample snapshot."""
    return StationDirectory.load(stations_file)


@pytest.fixture
def relay_settings(stations_file: Path) -> RelaySettings:
    """Relay settings pointing at test hosts and the sample snapshot."""
    return RelaySettings(
        public_base_url="http://relay.test:3000",
        stations_path=stations_file,
        catalog_base_url="http://catalog.test",
        catalog_secret="test-secret",
        resolver_timeout=1.0,
    )


@pytest.fixture
def transcoder_config() -> TranscoderConfig:
    """Transcoder configuration with a short kill grace period."""
    return TranscoderConfig(ffmpeg_binary="ffmpeg", terminate_timeout=0.2)


@pytest.fixture
def mock_resolver() -> Mock:
    """Resolver that finds nothing unless told otherwise."""
    resolver = Mock(spec=AddressResolver)
    resolver.resolve = AsyncMock(return_value=None)
    return resolver
