"""
Application Layer

비즈니스 로직과 유스케이스를 구현합니다.

구성 요소:
- stream: 프로세스 감독자, 수렴 루프, 지연 작업 스케줄러
"""

from relay_keeper.application.stream import (
    ConvergenceLoop,
    ConvergenceReport,
    ProcessSupervisor,
    SupervisorSettings,
    TaskScheduler,
)

__all__ = [
    "ConvergenceLoop",
    "ConvergenceReport",
    "ProcessSupervisor",
    "SupervisorSettings",
    "TaskScheduler",
]
