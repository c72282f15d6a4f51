"""
프로세스 감독자

스트림 하나당 외부 인코더 프로세스 하나의 전체 생명주기(시작, 검증,
종료 감지, 자동 재시작, 중지)를 관리하고 OS 수준의 생존 정보를 제공합니다.
작업 테이블은 이벤트 루프 단일 스레드에서만 변경됩니다.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable

from relay_keeper.application.stream.scheduler import TaskScheduler
from relay_keeper.common.errors import ErrorCode, StreamStartError
from relay_keeper.common.logging import BoundLogger, get_logger, set_stream_context
from relay_keeper.domain.interfaces.process import LivenessCheck, ProcessSpawner
from relay_keeper.domain.interfaces.registry import CameraRegistry
from relay_keeper.domain.models.signal import OutputSignal, SignalClass
from relay_keeper.domain.models.stream import (
    JobState,
    ProcessInfo,
    RestartPolicy,
    StreamJob,
    mask_url,
)
from relay_keeper.infrastructure.process.encoder import (
    DEFAULT_ENCODER_PATH,
    build_encoder_command,
    process_is_alive,
    spawn_encoder,
)
from relay_keeper.infrastructure.process.output_classifier import EncoderOutputClassifier
from relay_keeper.infrastructure.relay.probe import RelayEndpoints, RelayProbe

logger = get_logger(__name__)

_STDERR_CHUNK_SIZE = 4096


@dataclass
class SupervisorSettings:
    """
    감독자 타이밍 설정 (초)

    Attributes:
        handle_check_delay: 생성 후 OS 핸들 확인까지 대기
        validation_delay: 핸들 확인 후 릴레이 검증 시작까지 대기
        relay_ready_timeout: 릴레이 준비 확인 최대 대기
        relay_poll_interval: 릴레이 준비 확인 간격
        start_timeout: start() 전체 대기 상한
        stop_grace_seconds: 정상 종료 대기 후 강제 종료
    """

    handle_check_delay: float = 3.0
    validation_delay: float = 2.0
    relay_ready_timeout: float = 20.0
    relay_poll_interval: float = 1.0
    start_timeout: float = 30.0
    stop_grace_seconds: float = 5.0

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


class ProcessSupervisor:
    """
    인코더 프로세스 감독자

    스트림 이름당 StreamJob 하나를 소유합니다. 같은 이름에 대한 start는
    이름별 잠금으로 직렬화되어, 동시에 호출해도 프로세스가 하나만 생성됩니다.

    Example:
        >>> supervisor = ProcessSupervisor(registry, endpoints, probe)
        >>> url = await supervisor.start("rtsp://cam1/stream", "cam_1")
        >>> supervisor.is_stream_running("cam_1")
        True
        >>> await supervisor.stop("cam_1")
        True
    """

    def __init__(
        self,
        registry: CameraRegistry,
        endpoints: RelayEndpoints,
        probe: RelayProbe,
        spawner: ProcessSpawner = spawn_encoder,
        liveness: LivenessCheck = process_is_alive,
        clock: Callable[[], float] = time.time,
        settings: SupervisorSettings | None = None,
        restart_policy: RestartPolicy | None = None,
        encoder_path: str = DEFAULT_ENCODER_PATH,
        classifier_factory: Callable[[], EncoderOutputClassifier] = EncoderOutputClassifier,
    ) -> None:
        self._registry = registry
        self._endpoints = endpoints
        self._probe = probe
        self._spawner = spawner
        self._liveness = liveness
        self._clock = clock
        self._settings = settings or SupervisorSettings()
        self._restart_policy = restart_policy or RestartPolicy()
        self._encoder_path = encoder_path
        self._classifier_factory = classifier_factory

        self._jobs: dict[str, StreamJob] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._watchers: set[asyncio.Task] = set()
        self._scheduler = TaskScheduler()
        self._shutting_down = False

        # 통계
        self._spawn_count = 0
        self._restart_count = 0
        self._start_failures = 0

    # ------------------------------------------------------------------
    # 속성
    # ------------------------------------------------------------------

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def settings(self) -> SupervisorSettings:
        return self._settings

    @property
    def restart_policy(self) -> RestartPolicy:
        return self._restart_policy

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # 시작
    # ------------------------------------------------------------------

    async def start(self, source: str, stream_name: str) -> str:
        """
        스트림을 시작하고 공개 URL을 반환합니다.

        이미 OS 수준에서 살아 있는 작업이 있으면 새 프로세스를 만들지 않고
        같은 URL을 반환합니다. 명시적 호출이므로 재시작 횟수는 0부터 시작합니다.

        Args:
            source: 소스 URI (해석하지 않음)
            stream_name: 스트림 이름

        Returns:
            공개 재생 URL

        Raises:
            StreamStartError: 프로세스가 OS 핸들을 얻지 못한 경우
        """
        return await self._start(source, stream_name, restart_count=0)

    async def _start(self, source: str, stream_name: str, restart_count: int) -> str:
        public_url = self.get_public_url(stream_name)
        stream_logger = get_logger(__name__, stream_id=stream_name)

        async with self._lock_for(stream_name):
            existing = self._jobs.get(stream_name)
            if existing is not None:
                if self._is_alive(existing):
                    stream_logger.info(f"스트림 이미 실행 중: {stream_name}", pid=existing.pid)
                    return public_url
                self._purge(existing, reason="중복 확인 시 프로세스 없음")

            deadline = asyncio.get_running_loop().time() + self._settings.start_timeout
            job = await self._spawn(source, stream_name, restart_count, stream_logger)

            try:
                await asyncio.sleep(self._settings.handle_check_delay)
                self._check_handle(job, stream_logger)
            except StreamStartError:
                await self._write_registry(
                    stream_name,
                    {"streaming": False, "process_id": None, "last_checked": self._clock()},
                )
                raise
            except asyncio.CancelledError:
                self._discard(job)
                await self._terminate(job)
                raise

            if job.stop_requested:
                stream_logger.info(f"시작 중 중지 요청됨: {stream_name}")
                return public_url

            job.set_state(JobState.VALIDATING)
            stream_logger.info(
                f"인코더 시작됨 (PID {job.pid}), 릴레이 검증 대기: {public_url}",
                pid=job.pid,
                source=mask_url(source),
            )

            validation = self._scheduler.schedule(
                stream_name,
                lambda: self._validate(job),
                delay=self._settings.validation_delay,
            )

            remaining = deadline - asyncio.get_running_loop().time()
            done, _ = await asyncio.wait({validation}, timeout=max(0.0, remaining))
            if not done:
                stream_logger.warning(
                    f"시작 대기 상한({self._settings.start_timeout}초) 도달, 검증은 계속 진행: {stream_name}",
                    validated=job.validated,
                )

            return public_url

    async def _spawn(
        self,
        source: str,
        stream_name: str,
        restart_count: int,
        stream_logger: BoundLogger,
    ) -> StreamJob:
        argv = build_encoder_command(
            self._encoder_path,
            source,
            self._endpoints.push_url(stream_name),
        )

        try:
            process = await self._spawner(argv)
        except OSError as e:
            self._start_failures += 1
            stream_logger.error(
                f"인코더 실행 실패: {e}",
                code=ErrorCode.STREAM_START_FAILED.value,
                executable=self._encoder_path,
            )
            raise StreamStartError(
                f"인코더 프로세스를 시작할 수 없습니다: {e}",
                stream_id=stream_name,
                details={"executable": self._encoder_path},
            ) from e

        job = StreamJob(
            stream_name=stream_name,
            source=source,
            process=process,
            started_at=self._clock(),
            restart_count=restart_count,
        )
        self._jobs[stream_name] = job
        self._spawn_count += 1

        watcher = asyncio.create_task(
            self._watch_process(job),
            name=f"encoder-watch:{stream_name}",
        )
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

        stream_logger.debug(
            f"인코더 프로세스 생성: {stream_name}",
            pid=job.pid,
            restart_count=restart_count,
        )
        return job

    def _check_handle(self, job: StreamJob, stream_logger: BoundLogger) -> None:
        """OS 핸들 확인. 프로세스가 없으면 작업을 제거하고 StreamStartError."""
        if job.stop_requested:
            return

        if job.pid and job.exit_code is None and self._liveness(job.process):
            return

        self._discard(job)
        self._scheduler.cancel(job.stream_name)
        self._start_failures += 1
        stream_logger.error(
            f"인코더 프로세스가 시작 직후 사라짐: {job.stream_name}",
            code=ErrorCode.STREAM_START_FAILED.value,
            exit_code=job.exit_code,
            last_error=job.last_error,
        )
        raise StreamStartError(
            "인코더 프로세스가 시작되지 않았습니다",
            stream_id=job.stream_name,
            details={"exit_code": job.exit_code, "last_error": job.last_error},
        )

    async def _validate(self, job: StreamJob) -> None:
        """
        검증 프로토콜 2단계.

        OS 핸들을 다시 확인하고 릴레이 재생 목록을 조회합니다.
        릴레이 응답이 없어도 경고만 남기고 검증 완료로 처리합니다.
        """
        name = job.stream_name
        stream_logger = get_logger(__name__, stream_id=name)

        if not self._is_current(job):
            return

        if not self._liveness(job.process):
            stream_logger.warning(f"검증 시점에 프로세스 없음: {name}", pid=job.pid)
            return

        ready = await self._probe.wait_until_ready(
            name,
            timeout=self._settings.relay_ready_timeout,
            interval=self._settings.relay_poll_interval,
        )

        if not self._is_current(job):
            return

        if ready:
            stream_logger.info(f"릴레이 스트림 준비 완료: {self.get_public_url(name)}")
        else:
            stream_logger.warning(
                f"릴레이 스트림 미확인 ({self._settings.relay_ready_timeout}초), 계속 진행: {name}",
                code=ErrorCode.STREAM_VALIDATION_TIMEOUT.value,
            )

        job.validated = True
        job.set_state(JobState.RUNNING)
        await self._write_registry(
            name,
            {"streaming": True, "process_id": job.pid, "last_checked": self._clock()},
        )

    # ------------------------------------------------------------------
    # 출력 감시 / 종료 처리
    # ------------------------------------------------------------------

    async def _watch_process(self, job: StreamJob) -> None:
        """stderr를 EOF까지 읽어 분류하고, 종료되면 종료 처리를 실행합니다."""
        set_stream_context(job.stream_name)
        stream_logger = get_logger(__name__, stream_id=job.stream_name)
        classifier = self._classifier_factory()
        process = job.process
        stderr = process.stderr

        if stderr is not None:
            try:
                while True:
                    chunk = await stderr.read(_STDERR_CHUNK_SIZE)
                    if not chunk:
                        break
                    for signal in classifier.feed(chunk):
                        self._log_signal(job, signal, stream_logger)
            except (OSError, ValueError) as e:
                stream_logger.warning(f"인코더 출력 읽기 오류: {e}")
            for signal in classifier.flush():
                self._log_signal(job, signal, stream_logger)

        exit_code = await process.wait()
        await self._handle_exit(job, exit_code)

    def _log_signal(
        self,
        job: StreamJob,
        signal: OutputSignal,
        stream_logger: BoundLogger,
    ) -> None:
        kind = signal.signal
        if kind is SignalClass.FATAL_ERROR:
            job.last_error = signal.line
            stream_logger.error(f"[encoder] {signal.line}", signal=kind.value)
        elif kind is SignalClass.PROGRESS:
            if not job.progress_seen:
                job.progress_seen = True
                stream_logger.info("프레임 인코딩 시작", signal=kind.value)
            else:
                stream_logger.debug(f"[encoder] {signal.line}", signal=kind.value)
        elif kind is SignalClass.CONNECTION:
            stream_logger.info(f"[encoder] {signal.line}", signal=kind.value)
        else:
            stream_logger.debug(f"[encoder] {signal.line}", signal=kind.value)

    async def _handle_exit(self, job: StreamJob, exit_code: int | None) -> None:
        name = job.stream_name
        stream_logger = get_logger(__name__, stream_id=name)

        job.exit_code = exit_code
        job.set_state(JobState.EXITED)

        current = self._is_current(job)
        if not current and not self._is_orphaned_exit(job):
            stream_logger.info(
                f"인코더 종료 (관리 대상 아님): {name}",
                exit_code=exit_code,
                stop_requested=job.stop_requested,
            )
            return

        if current:
            del self._jobs[name]
        await self._write_registry(
            name,
            {"streaming": False, "process_id": None, "last_checked": self._clock()},
        )

        if not job.validated:
            stream_logger.warning(
                f"검증 전 인코더 종료, 자동 재시작 안 함: {name}",
                code=ErrorCode.STREAM_EARLY_EXIT.value,
                exit_code=exit_code,
                last_error=job.last_error,
            )
            return

        stream_logger.warning(
            f"인코더 비정상 종료: {name} (code={exit_code})",
            code=ErrorCode.STREAM_UNEXPECTED_EXIT.value,
            exit_code=exit_code,
            last_error=job.last_error,
        )

        if self._shutting_down:
            return

        if not self._restart_policy.allows(job.restart_count):
            stream_logger.error(
                f"최대 재시작 횟수 도달, 수렴 루프에 복구를 맡김: {name}",
                restart_count=job.restart_count,
                max_restarts=self._restart_policy.max_restarts,
            )
            return

        delay = self._restart_policy.delay_for(job.restart_count)
        attempt = job.restart_count + 1
        stream_logger.info(
            f"{delay:.1f}초 후 자동 재시작 ({attempt}/{self._restart_policy.max_restarts})",
            delay=delay,
        )
        self._scheduler.schedule(
            name,
            lambda: self._restart(name, attempt),
            delay=delay,
        )

    async def _restart(self, stream_name: str, restart_count: int) -> None:
        """레지스트리의 현재 소스 URI로 재시작합니다 (활성 카메라만)."""
        stream_logger = get_logger(__name__, stream_id=stream_name)
        if self._shutting_down:
            return

        try:
            camera = await self._registry.find_one({"stream_name": stream_name, "active": True})
        except Exception as e:
            stream_logger.error(f"재시작 전 레지스트리 조회 실패: {e}")
            return

        if camera is None:
            stream_logger.info(f"카메라가 없거나 비활성, 재시작 중단: {stream_name}")
            return

        self._restart_count += 1
        stream_logger.info(f"스트림 재시작 (시도 {restart_count})")
        try:
            await self._start(camera.source_uri, stream_name, restart_count=restart_count)
        except StreamStartError as e:
            stream_logger.error(f"재시작 실패: {e.message}", code=e.code.value)

    # ------------------------------------------------------------------
    # 중지
    # ------------------------------------------------------------------

    async def stop(self, stream_name: str) -> bool:
        """
        스트림을 중지합니다.

        대기 중인 검증/재시작 타이머도 함께 취소됩니다.

        Returns:
            중지한 작업이 있었는지 여부
        """
        self._scheduler.cancel(stream_name)

        job = self._jobs.pop(stream_name, None)
        if job is None:
            return False

        stream_logger = get_logger(__name__, stream_id=stream_name)
        stream_logger.info(f"스트림 중지 요청: {stream_name}", pid=job.pid)

        job.stop_requested = True
        job.set_state(JobState.STOPPING)
        await self._terminate(job)

        await self._write_registry(
            stream_name,
            {"streaming": False, "process_id": None, "last_checked": self._clock()},
        )
        return True

    async def stop_all(self) -> None:
        """
        전체 종료. 자동 재시작을 막고 모든 작업을 동시에 중지합니다.
        """
        self._shutting_down = True
        names = list(self._jobs)
        logger.info(f"모든 스트림 중지: {len(names)}개")

        self._scheduler.cancel_all()
        await asyncio.gather(*(self.stop(name) for name in names))

        watchers = [task for task in self._watchers if not task.done()]
        if watchers:
            await asyncio.wait(watchers, timeout=self._settings.stop_grace_seconds)

        logger.info("모든 스트림 중지 완료")

    async def _terminate(self, job: StreamJob) -> None:
        """정상 종료 요청 후 유예 시간 안에 끝나지 않으면 강제 종료합니다."""
        process = job.process
        if process is None or process.returncode is not None:
            return

        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.stop_grace_seconds)
            return
        except asyncio.TimeoutError:
            logger.warning(
                f"유예 시간 내 종료되지 않아 강제 종료: {job.stream_name}",
                stream_id=job.stream_name,
                pid=job.pid,
            )

        try:
            process.kill()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.stop_grace_seconds)
        except asyncio.TimeoutError:
            logger.error(f"프로세스 강제 종료 확인 실패: {job.stream_name}", pid=job.pid)

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def is_stream_running(self, stream_name: str) -> bool:
        """
        OS 수준의 실행 여부. 죽은 작업은 테이블에서 제거됩니다.
        """
        job = self._jobs.get(stream_name)
        if job is None:
            return False
        if self._is_alive(job):
            return True
        self._purge(job, reason="생존 확인 실패")
        return False

    def get_active_streams(self) -> list[str]:
        """살아 있는 스트림 이름 목록 (죽은 작업은 제거)"""
        return [name for name in list(self._jobs) if self.is_stream_running(name)]

    def get_process_info(self, stream_name: str) -> ProcessInfo | None:
        job = self._jobs.get(stream_name)
        return ProcessInfo.from_job(job) if job is not None else None

    def get_public_url(self, stream_name: str) -> str:
        """공개 재생 URL (작업 유무와 무관한 순수 함수)"""
        return self._endpoints.public_url(stream_name)

    def is_stream_starting(self, stream_name: str) -> bool:
        """시작 후 아직 검증되지 않은 작업이 있는지 확인"""
        job = self._jobs.get(stream_name)
        return (
            job is not None
            and not job.validated
            and job.state in (JobState.STARTING, JobState.VALIDATING)
        )

    def list_jobs(self) -> list[StreamJob]:
        return list(self._jobs.values())

    def get_stats(self) -> dict[str, Any]:
        """통계 정보 반환"""
        now = self._clock()
        return {
            "jobs": len(self._jobs),
            "validated": sum(1 for job in self._jobs.values() if job.validated),
            "spawn_count": self._spawn_count,
            "restart_count": self._restart_count,
            "start_failures": self._start_failures,
            "pending_timers": self._scheduler.pending(),
            "shutting_down": self._shutting_down,
            "streams": [job.to_dict(now) for job in self._jobs.values()],
        }

    # ------------------------------------------------------------------
    # 내부 유틸리티
    # ------------------------------------------------------------------

    def _lock_for(self, stream_name: str) -> asyncio.Lock:
        lock = self._locks.get(stream_name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[stream_name] = lock
        return lock

    def _is_current(self, job: StreamJob) -> bool:
        return self._jobs.get(job.stream_name) is job

    def _is_alive(self, job: StreamJob) -> bool:
        return job.process is not None and self._liveness(job.process)

    def _discard(self, job: StreamJob) -> None:
        if self._is_current(job):
            del self._jobs[job.stream_name]

    def _purge(self, job: StreamJob, reason: str) -> None:
        self._discard(job)
        job.purged = True
        logger.warning(
            f"죽은 작업 제거: {job.stream_name} ({reason})",
            stream_id=job.stream_name,
            pid=job.pid,
        )

    def _is_orphaned_exit(self, job: StreamJob) -> bool:
        """조회에서 먼저 제거된 작업이며 그 이름을 가진 다른 작업이나 진행 중인 시작이 없는지"""
        name = job.stream_name
        return job.purged and name not in self._jobs and not self._lock_for(name).locked()

    async def _write_registry(self, stream_name: str, fields: dict[str, Any]) -> None:
        """레지스트리 쓰기. 실패는 로그만 남기고 흡수합니다."""
        try:
            await self._registry.update_one({"stream_name": stream_name}, fields)
        except Exception as e:
            logger.error(
                f"레지스트리 갱신 실패: {stream_name} - {e}",
                stream_id=stream_name,
                code=ErrorCode.REGISTRY_WRITE_FAILED.value,
                fields=list(fields),
            )
