# -*- coding: utf-8 -*-
"""
인코더 프로세스 Infrastructure 패키지.

인코더 실행, OS 수준 생존 확인, stderr 출력 분류를 담당합니다.
"""

from relay_keeper.infrastructure.process.encoder import (
    DEFAULT_ENCODER_PATH,
    build_encoder_command,
    process_is_alive,
    spawn_encoder,
)
from relay_keeper.infrastructure.process.output_classifier import (
    ClassifierRule,
    DEFAULT_RULES,
    EncoderOutputClassifier,
)

__all__ = [
    "DEFAULT_ENCODER_PATH",
    "build_encoder_command",
    "process_is_alive",
    "spawn_encoder",
    "ClassifierRule",
    "DEFAULT_RULES",
    "EncoderOutputClassifier",
]
