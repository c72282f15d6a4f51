"""Shared pytest fixtures: fake encoder processes, relay probe and registry doubles."""

from __future__ import annotations

import asyncio
import inspect
import itertools
from typing import Any, Callable, Iterable

import httpx
import pytest

from relay_keeper.application.stream.supervisor import ProcessSupervisor, SupervisorSettings
from relay_keeper.domain.models.camera import CameraRecord
from relay_keeper.domain.models.stream import RestartPolicy
from relay_keeper.infrastructure.registry.memory import InMemoryCameraRegistry
from relay_keeper.infrastructure.relay.probe import RelayEndpoints, RelayProbe

PUSH_BASE = "rtsp://relay.test:8554"
PUBLIC_BASE = "http://relay.test:8888"

_pids = itertools.count(41000)


async def eventually(predicate: Callable[[], Any], timeout: float = 1.0, interval: float = 0.005) -> None:
    """Poll predicate (sync or async) until truthy or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(interval)


async def registry_field(registry, stream_name: str, name: str) -> Any:
    record = await registry.find_one({"stream_name": stream_name})
    return getattr(record, name) if record is not None else None


# =============================================================================
# Fake encoder process
# =============================================================================


class FakeProcess:
    """In-memory stand-in for asyncio.subprocess.Process."""

    def __init__(
        self,
        stderr_lines: Iterable[bytes] = (),
        exit_after: float | None = None,
        exit_on_terminate: bool = True,
    ) -> None:
        self.pid = next(_pids)
        self.returncode: int | None = None
        self.stderr = asyncio.StreamReader()
        for line in stderr_lines:
            self.stderr.feed_data(line)
        self.exit_on_terminate = exit_on_terminate
        self.terminate_calls = 0
        self.kill_calls = 0
        self._exited = asyncio.Event()
        if exit_after is not None:
            asyncio.get_running_loop().call_later(exit_after, self.exit, 1)

    def exit(self, code: int = 1) -> None:
        """Simulate the process terminating on its own."""
        if self.returncode is not None:
            return
        self.returncode = code
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def terminate(self) -> None:
        self.terminate_calls += 1
        if self.exit_on_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.kill_calls += 1
        self.exit(-9)


class FakeSpawner:
    """Records spawn calls and hands out FakeProcess instances."""

    def __init__(self) -> None:
        self.argvs: list[list[str]] = []
        self.processes: list[FakeProcess] = []
        self.fail_with: Exception | None = None
        self.fail_sources: set[str] = set()
        self.exit_immediately = False
        self.exit_after: float | None = None
        self.exit_on_terminate = True
        self.stderr_lines: list[bytes] = []

    async def __call__(self, argv: list[str]) -> FakeProcess:
        if self.fail_with is not None:
            raise self.fail_with
        if any(source in argv for source in self.fail_sources):
            raise FileNotFoundError(2, "No such file or directory", argv[0])

        self.argvs.append(argv)
        process = FakeProcess(
            stderr_lines=self.stderr_lines,
            exit_after=self.exit_after,
            exit_on_terminate=self.exit_on_terminate,
        )
        if self.exit_immediately:
            process.exit(1)
        self.processes.append(process)
        return process

    @property
    def alive(self) -> list[FakeProcess]:
        return [p for p in self.processes if p.returncode is None]

    def source_of(self, index: int) -> str:
        argv = self.argvs[index]
        return argv[argv.index("-i") + 1]


class Liveness:
    """Liveness capability with a switch to mark pids dead without an exit event."""

    def __init__(self) -> None:
        self.dead_pids: set[int] = set()

    def __call__(self, process: FakeProcess) -> bool:
        return process.returncode is None and process.pid not in self.dead_pids


# =============================================================================
# Relay probe
# =============================================================================


class RelayState:
    """Mutable relay behaviour for httpx.MockTransport."""

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.ready and request.url.path.endswith("/index.m3u8"):
            return httpx.Response(200, text="#EXTM3U\n")
        return httpx.Response(404)


def make_probe(relay: RelayState, request_timeout: float = 0.5) -> RelayProbe:
    client = httpx.AsyncClient(transport=httpx.MockTransport(relay.handler))
    return RelayProbe(
        RelayEndpoints(PUSH_BASE, PUBLIC_BASE),
        request_timeout=request_timeout,
        client=client,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def endpoints() -> RelayEndpoints:
    return RelayEndpoints(PUSH_BASE, PUBLIC_BASE)


@pytest.fixture
def relay() -> RelayState:
    return RelayState(ready=True)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def liveness() -> Liveness:
    return Liveness()


@pytest.fixture
def fast_settings() -> SupervisorSettings:
    return SupervisorSettings(
        handle_check_delay=0.01,
        validation_delay=0.01,
        relay_ready_timeout=0.05,
        relay_poll_interval=0.01,
        start_timeout=1.0,
        stop_grace_seconds=0.1,
    )


@pytest.fixture
def fast_policy() -> RestartPolicy:
    return RestartPolicy(base_delay=0.02, multiplier=1.5, max_delay=0.05, max_restarts=3)


@pytest.fixture
def registry() -> InMemoryCameraRegistry:
    return InMemoryCameraRegistry(
        [CameraRecord(stream_name="cam_1", source_uri="rtsp://cam1/stream")]
    )


@pytest.fixture
def make_supervisor(
    registry,
    endpoints,
    relay,
    spawner,
    liveness,
    fast_settings,
    fast_policy,
) -> Callable[..., ProcessSupervisor]:
    def factory(**overrides) -> ProcessSupervisor:
        kwargs = dict(
            registry=registry,
            endpoints=endpoints,
            probe=make_probe(relay),
            spawner=spawner,
            liveness=liveness,
            settings=fast_settings,
            restart_policy=fast_policy,
            encoder_path="ffmpeg",
        )
        kwargs.update(overrides)
        return ProcessSupervisor(**kwargs)

    return factory


@pytest.fixture
async def supervisor(make_supervisor):
    sup = make_supervisor()
    yield sup
    await sup.stop_all()
