"""
도메인 인터페이스 모듈

인코더 프로세스와 카메라 레지스트리의 경계를 Protocol로 정의합니다.
"""

from relay_keeper.domain.interfaces.process import (
    LivenessCheck,
    ProcessHandle,
    ProcessSpawner,
)
from relay_keeper.domain.interfaces.registry import CameraRegistry, RegistryFilter

__all__ = [
    "CameraRegistry",
    "RegistryFilter",
    "ProcessHandle",
    "ProcessSpawner",
    "LivenessCheck",
]
