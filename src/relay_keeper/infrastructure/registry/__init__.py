# -*- coding: utf-8 -*-
"""
카메라 레지스트리 Infrastructure 패키지.

- memory: 인메모리 레지스트리 (테스트, 단일 실행)
- json_file: JSON 파일 영속 레지스트리
"""

from relay_keeper.infrastructure.registry.memory import InMemoryCameraRegistry
from relay_keeper.infrastructure.registry.json_file import JsonFileCameraRegistry

__all__ = ["InMemoryCameraRegistry", "JsonFileCameraRegistry"]
