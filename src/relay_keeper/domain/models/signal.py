"""
인코더 출력 신호 모델

인코더 stderr 라인을 분류한 결과입니다.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SignalClass(str, Enum):
    """인코더 출력 라인 분류"""

    FATAL_ERROR = "FATAL_ERROR"         # 오류 표시 (로그만, 프로세스는 유지)
    BENIGN_WARNING = "BENIGN_WARNING"   # 알려진 디코더 경고 (오류 분류에서 제외)
    PROGRESS = "PROGRESS"               # 프레임 인코딩 진행
    CONNECTION = "CONNECTION"           # 입출력 스트림 연결 정보
    INFO = "INFO"                       # 기타


@dataclass(frozen=True)
class OutputSignal:
    signal: SignalClass
    line: str

    @property
    def is_error(self) -> bool:
        return self.signal is SignalClass.FATAL_ERROR
