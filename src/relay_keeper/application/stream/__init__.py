"""
스트림 관리 모듈

인코더 프로세스의 생명주기 감독과 레지스트리 수렴을 담당합니다.
"""

from relay_keeper.application.stream.scheduler import TaskScheduler
from relay_keeper.application.stream.supervisor import ProcessSupervisor, SupervisorSettings
from relay_keeper.application.stream.convergence import ConvergenceLoop, ConvergenceReport

__all__ = [
    "TaskScheduler",
    "ProcessSupervisor",
    "SupervisorSettings",
    "ConvergenceLoop",
    "ConvergenceReport",
]
