"""
지연 작업 스케줄러

스트림 이름별로 지연 실행되는 asyncio 작업(검증 타이머, 재시작 타이머)을
관리합니다. 명시적 중지 시 해당 이름의 대기 작업을 모두 취소할 수 있습니다.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from relay_keeper.common.logging import get_logger

logger = get_logger(__name__)

CoroutineFactory = Callable[[], Awaitable[Any]]


class TaskScheduler:
    """
    키별 취소 가능한 지연 작업 스케줄러

    완료된 작업은 스스로 목록에서 제거되며,
    처리되지 않은 예외는 로그로 남깁니다.

    Example:
        >>> scheduler = TaskScheduler()
        >>> scheduler.schedule("cam_1", lambda: validate(job), delay=2.0)
        >>> scheduler.cancel("cam_1")
    """

    def __init__(self) -> None:
        self._tasks: dict[str, set[asyncio.Task]] = {}
        self._scheduled_count = 0
        self._cancelled_count = 0
        self._failed_count = 0

    def schedule(
        self,
        key: str,
        factory: CoroutineFactory,
        delay: float = 0.0,
    ) -> asyncio.Task:
        """
        작업을 예약합니다.

        Args:
            key: 작업 그룹 키 (스트림 이름)
            factory: 지연 후 호출되어 코루틴을 만드는 함수
            delay: 지연 시간 (초)

        Returns:
            예약된 asyncio.Task
        """
        task = asyncio.create_task(
            self._run(factory, delay),
            name=f"scheduled:{key}",
        )
        self._tasks.setdefault(key, set()).add(task)
        task.add_done_callback(lambda t: self._on_done(key, t))
        self._scheduled_count += 1
        return task

    async def _run(self, factory: CoroutineFactory, delay: float) -> Any:
        if delay > 0:
            await asyncio.sleep(delay)
        return await factory()

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        tasks = self._tasks.get(key)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._tasks[key]

        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            self._failed_count += 1
            logger.error(
                f"예약 작업 실패: {key} - {exc}",
                stream_id=key,
                error_type=type(exc).__name__,
            )

    def cancel(self, key: str) -> int:
        """
        키에 해당하는 대기 작업을 모두 취소합니다.

        현재 실행 중인 작업 자신은 취소하지 않습니다.

        Returns:
            취소한 작업 수
        """
        current = asyncio.current_task()
        cancelled = 0
        for task in list(self._tasks.get(key, ())):
            if task is current or task.done():
                continue
            task.cancel()
            cancelled += 1

        self._cancelled_count += cancelled
        return cancelled

    def cancel_all(self) -> int:
        """모든 대기 작업을 취소합니다."""
        return sum(self.cancel(key) for key in list(self._tasks))

    def pending(self, key: str | None = None) -> int:
        """대기 중인 작업 수 (key가 None이면 전체)"""
        if key is not None:
            return sum(1 for task in self._tasks.get(key, ()) if not task.done())
        return sum(self.pending(k) for k in self._tasks)

    async def drain(self) -> None:
        """현재 예약된 모든 작업이 끝날 때까지 기다립니다."""
        current = asyncio.current_task()
        while True:
            tasks = [
                task
                for group in self._tasks.values()
                for task in group
                if task is not current and not task.done()
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_stats(self) -> dict[str, Any]:
        """통계 정보 반환"""
        return {
            "pending": self.pending(),
            "scheduled": self._scheduled_count,
            "cancelled": self._cancelled_count,
            "failed": self._failed_count,
        }
