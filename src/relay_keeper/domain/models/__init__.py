"""
데이터 모델 모듈

송출 작업, 카메라 레코드, 인코더 출력 신호 등 핵심 데이터 구조를 정의합니다.
"""

from relay_keeper.domain.models.stream import (
    JobState,
    ProcessInfo,
    RestartPolicy,
    StreamJob,
    mask_url,
)
from relay_keeper.domain.models.camera import CameraRecord
from relay_keeper.domain.models.signal import OutputSignal, SignalClass

__all__ = [
    # 스트림
    "JobState",
    "ProcessInfo",
    "RestartPolicy",
    "StreamJob",
    "mask_url",
    # 카메라
    "CameraRecord",
    # 인코더 출력
    "OutputSignal",
    "SignalClass",
]
