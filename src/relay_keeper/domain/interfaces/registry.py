"""
카메라 레지스트리 인터페이스

코어는 레지스트리를 단순한 키-값 저장소로만 사용합니다.
필터는 필드 이름 → 값 의 동등 비교 딕셔너리입니다.
사용하는 필터: {stream_name}, {stream_name, active: True}, {active: True}
"""

from __future__ import annotations

from typing import Any, Protocol

from relay_keeper.domain.models.camera import CameraRecord

RegistryFilter = dict[str, Any]


class CameraRegistry(Protocol):
    """카메라 레지스트리 프로토콜"""

    async def find(self, query: RegistryFilter | None = None) -> list[CameraRecord]: ...

    async def find_one(self, query: RegistryFilter) -> CameraRecord | None: ...

    async def update_one(self, query: RegistryFilter, fields: dict[str, Any]) -> int: ...

    async def update_many(self, query: RegistryFilter, fields: dict[str, Any]) -> int: ...

    async def save(self, record: CameraRecord) -> CameraRecord: ...

    async def delete_one(self, query: RegistryFilter) -> int: ...
