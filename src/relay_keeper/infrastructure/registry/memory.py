# -*- coding: utf-8 -*-
"""
인메모리 카메라 레지스트리.

문서 저장소처럼 동작합니다: 조회 결과는 사본이며,
호출자는 사본을 수정한 뒤 save()로 되돌려 씁니다.
"""

from __future__ import annotations

import copy
import time
from typing import Any

from relay_keeper.common.errors import ErrorCode, RegistryError
from relay_keeper.common.logging import get_logger
from relay_keeper.domain.interfaces.registry import RegistryFilter
from relay_keeper.domain.models.camera import CameraRecord


class InMemoryCameraRegistry:
    """
    camera_id 를 키로 하는 인메모리 레지스트리.

    이벤트 루프 단일 스레드에서만 사용하므로 잠금이 없습니다.
    """

    def __init__(self, records: list[CameraRecord] | None = None) -> None:
        self._records: dict[str, CameraRecord] = {}
        self._logger = get_logger(__name__)
        for record in records or []:
            self._records[record.camera_id] = copy.deepcopy(record)

    def __len__(self) -> int:
        return len(self._records)

    def _matching(self, query: RegistryFilter | None) -> list[CameraRecord]:
        return [record for record in self._records.values() if record.matches(query)]

    async def find(self, query: RegistryFilter | None = None) -> list[CameraRecord]:
        """필터와 일치하는 모든 레코드의 사본을 반환합니다."""
        return [copy.deepcopy(record) for record in self._matching(query)]

    async def find_one(self, query: RegistryFilter) -> CameraRecord | None:
        """필터와 일치하는 첫 레코드의 사본을 반환합니다."""
        for record in self._matching(query):
            return copy.deepcopy(record)
        return None

    async def update_one(self, query: RegistryFilter, fields: dict[str, Any]) -> int:
        """
        첫 번째 일치 레코드의 필드를 갱신합니다.

        Returns:
            갱신된 레코드 수 (0 또는 1)
        """
        matched = self._matching(query)[:1]
        self._apply(matched, fields, operation="update_one")
        await self._persist()
        return len(matched)

    async def update_many(self, query: RegistryFilter, fields: dict[str, Any]) -> int:
        """일치하는 모든 레코드의 필드를 갱신합니다."""
        matched = self._matching(query)
        self._apply(matched, fields, operation="update_many")
        await self._persist()
        return len(matched)

    async def save(self, record: CameraRecord) -> CameraRecord:
        """레코드를 삽입하거나 같은 camera_id 의 레코드를 교체합니다."""
        stored = copy.deepcopy(record)
        stored.updated_at = time.time()
        self._records[stored.camera_id] = stored
        await self._persist()
        record.updated_at = stored.updated_at
        return copy.deepcopy(stored)

    async def delete_one(self, query: RegistryFilter) -> int:
        """첫 번째 일치 레코드를 삭제합니다."""
        for record in self._matching(query)[:1]:
            del self._records[record.camera_id]
            await self._persist()
            return 1
        return 0

    def _apply(
        self,
        records: list[CameraRecord],
        fields: dict[str, Any],
        operation: str,
    ) -> None:
        unknown = set(fields) - CameraRecord.field_names()
        if unknown:
            raise RegistryError(
                ErrorCode.REGISTRY_WRITE_FAILED,
                f"알 수 없는 카메라 필드: {sorted(unknown)}",
                operation=operation,
            )

        now = time.time()
        for record in records:
            record.apply(fields)
            record.updated_at = now

    async def _persist(self) -> None:
        """변경 사항 저장 (인메모리는 할 일 없음)"""
        return None
