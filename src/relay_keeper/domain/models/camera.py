"""
카메라 레코드 모델

외부 레지스트리가 소유하는 카메라 레코드를 나타냅니다.
코어는 active/source_uri만 읽고 streaming/process_id/last_checked만 씁니다.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from relay_keeper.domain.models.stream import mask_url


def _new_camera_id() -> str:
    return uuid.uuid4().hex


@dataclass
class CameraRecord:
    """
    카메라 레코드

    Attributes:
        stream_name: 스트림 이름 (StreamJob과 매칭되는 외래 키)
        source_uri: 카메라 소스 URI
        active: 희망 상태 (True = 송출되어야 함)
        streaming: 관측 상태 (코어가 기록)
        process_id: 인코더 PID 진단용 사본
        last_checked: 마지막 점검 시각
        camera_id: 레코드 ID
        name: 표시 이름
        public_url: 공개 재생 URL
        workspace_id: 소속 워크스페이스
    """

    stream_name: str
    source_uri: str
    active: bool = True
    streaming: bool = False
    process_id: int | None = None
    last_checked: float | None = None
    camera_id: str = field(default_factory=_new_camera_id)
    name: str = ""
    public_url: str = ""
    workspace_id: str = "default_workspace"
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.stream_name:
            raise ValueError("stream_name은 필수입니다")
        if not self.source_uri:
            raise ValueError("source_uri는 필수입니다")

    def matches(self, query: dict[str, Any] | None) -> bool:
        """필터의 모든 필드가 동일한지 확인합니다."""
        if not query:
            return True
        return all(getattr(self, key, None) == value for key, value in query.items())

    def apply(self, updates: dict[str, Any]) -> None:
        """필드를 갱신합니다. 알 수 없는 필드는 ValueError."""
        known = self.field_names()
        for key, value in updates.items():
            if key not in known:
                raise ValueError(f"알 수 없는 카메라 필드: {key}")
            setattr(self, key, value)

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def to_dict(self, mask: bool = False) -> dict[str, Any]:
        """딕셔너리로 변환 (mask=True면 소스 URI 비밀번호 마스킹)"""
        data = asdict(self)
        if mask:
            data["source_uri"] = mask_url(self.source_uri)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CameraRecord":
        """딕셔너리에서 CameraRecord 객체를 생성합니다. 모르는 키는 무시합니다."""
        known = cls.field_names()
        return cls(**{key: value for key, value in data.items() if key in known})
