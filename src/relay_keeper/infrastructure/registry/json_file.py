# -*- coding: utf-8 -*-
"""
JSON 파일 카메라 레지스트리.

모든 쓰기 후 전체 레코드를 JSON 파일로 원자적으로 저장하여,
서비스 재시작 시 active 카메라를 복원할 수 있게 합니다.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

import orjson

from relay_keeper.common.errors import ErrorCode, RegistryError
from relay_keeper.domain.models.camera import CameraRecord
from relay_keeper.infrastructure.registry.memory import InMemoryCameraRegistry


class JsonFileCameraRegistry(InMemoryCameraRegistry):
    """
    파일 기반 레지스트리.

    파일 형식: {"cameras": [CameraRecord.to_dict(), ...]}

    Example:
        >>> registry = JsonFileCameraRegistry("data/cameras.json")
        >>> await registry.find({"active": True})
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        # 스냅샷과 파일 쓰기를 직렬화: 마지막 쓰기가 항상 최신 상태
        self._write_lock = asyncio.Lock()
        for record in self._load():
            self._records[record.camera_id] = record

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> list[CameraRecord]:
        if not self._path.exists():
            return []

        try:
            data = orjson.loads(self._path.read_bytes())
            records = [CameraRecord.from_dict(item) for item in data.get("cameras", [])]
        except (OSError, orjson.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            raise RegistryError(
                ErrorCode.REGISTRY_READ_FAILED,
                f"레지스트리 파일을 읽을 수 없습니다: {self._path}",
                operation="load",
                details={"path": str(self._path), "error": str(e)},
            ) from e

        self._logger.info(
            f"레지스트리 로드: {len(records)}개 카메라",
            path=str(self._path),
        )
        return records

    async def _persist(self) -> None:
        async with self._write_lock:
            payload = orjson.dumps(
                {"cameras": [record.to_dict() for record in self._records.values()]},
                option=orjson.OPT_INDENT_2,
            )
            try:
                await asyncio.to_thread(self._write_atomic, payload)
            except OSError as e:
                raise RegistryError(
                    ErrorCode.REGISTRY_WRITE_FAILED,
                    f"레지스트리 파일 저장 실패: {self._path}",
                    operation="persist",
                    details={"path": str(self._path), "error": str(e)},
                ) from e

    def _write_atomic(self, payload: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=self._path.parent,
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
        try:
            os.replace(tmp.name, self._path)
        except OSError:
            Path(tmp.name).unlink(missing_ok=True)
            raise
