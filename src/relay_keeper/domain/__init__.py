"""
Domain Layer

순수 비즈니스 규칙과 엔티티를 정의합니다.
외부 라이브러리에 의존하지 않으며, 표준 라이브러리만 사용합니다.

구성 요소:
- interfaces: 프로세스/레지스트리 경계 (Protocol)
- models: 데이터 모델 (StreamJob, CameraRecord, RestartPolicy)
"""

from relay_keeper.domain.models.stream import (
    JobState,
    ProcessInfo,
    RestartPolicy,
    StreamJob,
)
from relay_keeper.domain.models.camera import CameraRecord
from relay_keeper.domain.models.signal import OutputSignal, SignalClass
from relay_keeper.domain.interfaces.registry import CameraRegistry
from relay_keeper.domain.interfaces.process import ProcessHandle

__all__ = [
    # 인터페이스
    "CameraRegistry",
    "ProcessHandle",
    # 스트림 모델
    "JobState",
    "ProcessInfo",
    "RestartPolicy",
    "StreamJob",
    # 카메라 모델
    "CameraRecord",
    # 인코더 출력
    "OutputSignal",
    "SignalClass",
]
