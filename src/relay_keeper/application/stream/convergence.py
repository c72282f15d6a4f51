"""
수렴 루프

레지스트리의 희망 상태(active=True)와 감독자의 관측 상태(살아 있는 작업)를
주기적으로 비교하여 차이를 메웁니다. 서비스 시작 시 한 번 실행되는
복원(restore_streams)도 담당합니다.

수렴 루프는 프로세스를 직접 만들지 않고 항상 ProcessSupervisor의
공개 연산을 통해서만 조치합니다.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from relay_keeper.common.errors import ErrorCode, RelayKeeperError
from relay_keeper.common.logging import get_logger
from relay_keeper.domain.interfaces.registry import CameraRegistry
from relay_keeper.domain.models.camera import CameraRecord

if TYPE_CHECKING:
    from relay_keeper.application.stream.supervisor import ProcessSupervisor

logger = get_logger(__name__)


@dataclass
class ConvergenceReport:
    """
    한 번의 점검/복원 결과

    Attributes:
        checked: 점검한 활성 카메라 수
        started: start를 호출한 수
        failed: 시작 실패 또는 검증되지 않은 수
        refreshed: 상태 필드만 갱신한 수
        skipped: 이미 실행 중이라 건너뛴 수 (복원 시)
        failed_streams: 실패한 스트림 이름
    """

    checked: int = 0
    started: int = 0
    failed: int = 0
    refreshed: int = 0
    skipped: int = 0
    failed_streams: list[str] = field(default_factory=list)
    aborted: bool = False

    def mark_failed(self, stream_name: str) -> None:
        self.failed += 1
        self.failed_streams.append(stream_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "started": self.started,
            "failed": self.failed,
            "refreshed": self.refreshed,
            "skipped": self.skipped,
            "failed_streams": list(self.failed_streams),
            "aborted": self.aborted,
        }


class ConvergenceLoop:
    """
    수렴 루프

    Attributes:
        check_interval: 주기 점검 간격 (초)
        initial_delay: 첫 점검까지 대기 (수동 시작이 안정될 시간)
        recheck_delay: 주기 점검에서 start 후 재확인까지 대기
        settle_delay: 복원 시 start 후 재확인까지 대기
        startup_spacing: 복원 시 카메라 간 간격

    Example:
        >>> loop = ConvergenceLoop(supervisor, registry)
        >>> await loop.restore_streams()
        >>> loop.start()
        >>> ...
        >>> await loop.stop()
    """

    DEFAULT_CHECK_INTERVAL = 15.0
    DEFAULT_INITIAL_DELAY = 5.0
    DEFAULT_RECHECK_DELAY = 3.0
    DEFAULT_SETTLE_DELAY = 2.0
    DEFAULT_STARTUP_SPACING = 1.0

    def __init__(
        self,
        supervisor: "ProcessSupervisor",
        registry: CameraRegistry,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        recheck_delay: float = DEFAULT_RECHECK_DELAY,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        startup_spacing: float = DEFAULT_STARTUP_SPACING,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._supervisor = supervisor
        self._registry = registry
        self.check_interval = check_interval
        self.initial_delay = initial_delay
        self.recheck_delay = recheck_delay
        self.settle_delay = settle_delay
        self.startup_spacing = startup_spacing
        self._clock = clock

        self._task: asyncio.Task | None = None
        self._check_count = 0
        self._last_report: ConvergenceReport | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_report(self) -> ConvergenceReport | None:
        return self._last_report

    # ------------------------------------------------------------------
    # 주기 점검
    # ------------------------------------------------------------------

    def start(self) -> None:
        """주기 점검을 시작합니다."""
        if self.is_running:
            logger.info("수렴 루프가 이미 실행 중입니다")
            return

        self._task = asyncio.create_task(self._run(), name="convergence-loop")
        logger.info(
            f"수렴 루프 시작 (간격 {self.check_interval}초, 첫 점검 {self.initial_delay}초 후)"
        )

    async def stop(self) -> None:
        """주기 점검을 중지합니다."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("수렴 루프 중지")

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay)
        while True:
            try:
                await self.check_all_streams()
            except Exception as e:
                logger.error(f"수렴 점검 오류: {e}")
            await asyncio.sleep(self.check_interval)

    async def check_all_streams(self) -> ConvergenceReport:
        """
        모든 활성 카메라를 점검하고 실행 중이 아니면 시작합니다.

        비활성 카메라는 실행 중이어도 중지하지 않습니다.
        레지스트리 조회 실패는 이번 점검만 중단합니다.
        """
        report = ConvergenceReport()
        self._check_count += 1

        cameras = await self._load_active(report)
        if report.aborted:
            self._last_report = report
            return report

        logger.debug(f"활성 카메라 {len(cameras)}개 점검")

        for camera in cameras:
            report.checked += 1
            try:
                await self._converge(camera, report)
            except Exception as e:
                report.mark_failed(camera.stream_name)
                logger.error(
                    f"카메라 점검 오류: {camera.stream_name} - {e}",
                    stream_id=camera.stream_name,
                )

        logger.info(
            f"점검 완료: 활성 스트림 {len(self._supervisor.get_active_streams())}개",
            **report.to_dict(),
        )
        self._last_report = report
        return report

    async def _converge(self, camera: CameraRecord, report: ConvergenceReport) -> None:
        name = camera.stream_name
        updates: dict[str, Any] = {"last_checked": self._clock()}

        if not self._supervisor.is_stream_running(name):
            logger.warning(
                f"스트림이 실행 중이 아님, 재시작: {name}",
                stream_id=name,
                registry_streaming=camera.streaming,
                registry_process_id=camera.process_id,
            )
            report.started += 1
            started = await self._start_and_verify(camera, self.recheck_delay)
            updates.update(self._observed_fields(name) if started else _NOT_STREAMING)
            if not started:
                report.mark_failed(name)
        else:
            info = self._supervisor.get_process_info(name)
            if info is not None and (not camera.streaming or camera.process_id != info.pid):
                logger.info(
                    f"상태 갱신: {name} (streaming={camera.streaming}, pid={camera.process_id} → {info.pid})",
                    stream_id=name,
                )
                updates.update({"streaming": True, "process_id": info.pid})
                report.refreshed += 1

        await self._update(name, updates)

    # ------------------------------------------------------------------
    # 시작 시 복원
    # ------------------------------------------------------------------

    async def restore_streams(self) -> ConvergenceReport:
        """
        서비스 시작 시 활성 카메라를 하나씩 순서대로 복원합니다.

        동시에 여러 인코더를 띄우지 않도록 카메라마다 start가 끝나고
        안정화될 때까지 기다린 뒤 다음 카메라로 넘어갑니다.
        개별 실패는 건너뛰고 계속 진행합니다.
        """
        report = ConvergenceReport()
        cameras = await self._load_active(report)
        if report.aborted:
            return report

        logger.info(f"활성 카메라 {len(cameras)}개 복원 시작")

        for index, camera in enumerate(cameras):
            if index > 0 and self.startup_spacing > 0:
                await asyncio.sleep(self.startup_spacing)

            name = camera.stream_name
            report.checked += 1
            try:
                if self._supervisor.is_stream_running(name):
                    logger.info(f"이미 실행 중: {name}", stream_id=name)
                    report.skipped += 1
                    await self._update(name, self._observed_fields(name))
                    continue

                report.started += 1
                if await self._start_and_verify(camera, self.settle_delay):
                    await self._update(name, self._observed_fields(name))
                else:
                    report.mark_failed(name)
                    await self._update(name, dict(_NOT_STREAMING))
            except Exception as e:
                report.mark_failed(name)
                logger.error(f"복원 실패: {name} - {e}", stream_id=name)

        logger.info("스트림 복원 완료", **report.to_dict())
        self._last_report = report
        return report

    async def refresh_status(self) -> ConvergenceReport:
        """
        활성 카메라의 streaming/process_id 를 감독자의 실제 상태로 다시 씁니다.

        아무것도 시작하지 않습니다.
        """
        report = ConvergenceReport()
        cameras = await self._load_active(report)
        if report.aborted:
            return report

        for camera in cameras:
            name = camera.stream_name
            report.checked += 1
            if self._supervisor.is_stream_running(name):
                fields = self._observed_fields(name)
            else:
                fields = dict(_NOT_STREAMING)
            fields["last_checked"] = self._clock()
            if fields["streaming"] != camera.streaming or fields["process_id"] != camera.process_id:
                report.refreshed += 1
            await self._update(name, fields)

        logger.info("상태 새로고침 완료", **report.to_dict())
        return report

    # ------------------------------------------------------------------
    # 내부 유틸리티
    # ------------------------------------------------------------------

    async def _load_active(self, report: ConvergenceReport) -> list[CameraRecord]:
        try:
            return await self._registry.find({"active": True})
        except Exception as e:
            report.aborted = True
            logger.error(
                f"레지스트리 조회 실패: {e}",
                code=ErrorCode.REGISTRY_READ_FAILED.value,
            )
            return []

    async def _start_and_verify(self, camera: CameraRecord, settle: float) -> bool:
        """start 후 settle 초 기다렸다가 실제 실행 여부를 확인합니다."""
        name = camera.stream_name
        try:
            await self._supervisor.start(camera.source_uri, name)
        except RelayKeeperError as e:
            logger.error(f"시작 실패: {name} - {e.message}", stream_id=name, code=e.code.value)
            return False

        if settle > 0:
            await asyncio.sleep(settle)

        running = self._supervisor.is_stream_running(name)
        if running:
            logger.info(f"실행 확인: {name}", stream_id=name)
        else:
            logger.warning(f"시작했지만 아직 확인되지 않음: {name}", stream_id=name)
        return running

    def _observed_fields(self, stream_name: str) -> dict[str, Any]:
        info = self._supervisor.get_process_info(stream_name)
        if info is None:
            return dict(_NOT_STREAMING)
        return {"streaming": True, "process_id": info.pid}

    async def _update(self, stream_name: str, fields: dict[str, Any]) -> None:
        try:
            await self._registry.update_one({"stream_name": stream_name}, fields)
        except Exception as e:
            logger.error(
                f"레지스트리 갱신 실패: {stream_name} - {e}",
                stream_id=stream_name,
                code=ErrorCode.REGISTRY_WRITE_FAILED.value,
            )

    def get_stats(self) -> dict[str, Any]:
        """통계 정보 반환"""
        return {
            "running": self.is_running,
            "check_interval": self.check_interval,
            "check_count": self._check_count,
            "last_report": self._last_report.to_dict() if self._last_report else None,
        }


_NOT_STREAMING: dict[str, Any] = {"streaming": False, "process_id": None}
