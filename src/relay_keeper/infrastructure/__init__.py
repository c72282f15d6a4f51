# -*- coding: utf-8 -*-
"""
Infrastructure Layer 패키지.

외부 시스템과의 통신을 담당합니다:
- process: 인코더 프로세스 실행, 생존 확인, 출력 분류
- relay: 릴레이 서버 HTTP 프로브
- registry: 카메라 레지스트리 구현
"""

from relay_keeper.infrastructure.process import (
    EncoderOutputClassifier,
    build_encoder_command,
    process_is_alive,
    spawn_encoder,
)
from relay_keeper.infrastructure.relay import RelayEndpoints, RelayProbe
from relay_keeper.infrastructure.registry import (
    InMemoryCameraRegistry,
    JsonFileCameraRegistry,
)

__all__ = [
    "EncoderOutputClassifier",
    "build_encoder_command",
    "process_is_alive",
    "spawn_encoder",
    "RelayEndpoints",
    "RelayProbe",
    "InMemoryCameraRegistry",
    "JsonFileCameraRegistry",
]
