# -*- coding: utf-8 -*-
"""
인코더 출력 분류기.

인코더 stderr 텍스트를 라인 단위로 잘라 규칙 테이블에 따라 분류합니다.
프로세스 생명주기와 분리되어 있어 실제 프로세스 없이 테스트할 수 있습니다.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from typing import Iterable

from relay_keeper.domain.models.signal import OutputSignal, SignalClass


@dataclass(frozen=True)
class ClassifierRule:
    """패턴 → 신호 분류 규칙"""

    pattern: re.Pattern[str]
    signal: SignalClass

    def matches(self, line: str) -> bool:
        return self.pattern.search(line) is not None


# 순서가 의미를 가진다 (첫 번째 일치 규칙 적용)
DEFAULT_RULES: tuple[ClassifierRule, ...] = (
    # HEVC 참조 프레임 경고는 카메라에서 흔하며 실제 장애가 아님
    ClassifierRule(
        re.compile(r"\[hevc @.*(Could not find ref|Error constructing|Skipping invalid)"),
        SignalClass.BENIGN_WARNING,
    ),
    ClassifierRule(re.compile(r"error", re.IGNORECASE), SignalClass.FATAL_ERROR),
    ClassifierRule(re.compile(r"frame=|fps="), SignalClass.PROGRESS),
    ClassifierRule(re.compile(r"Stream #0|Output #0"), SignalClass.CONNECTION),
)

# 진행 라인은 \r로 끝나므로 두 구분자 모두 처리
_LINE_SPLIT = re.compile(r"\r\n|\r|\n")

# 줄바꿈 없는 출력이 이 길이를 넘으면 한 라인으로 내보낸다
MAX_LINE_LENGTH = 8192


class EncoderOutputClassifier:
    """
    증분 라인 분류기.

    바이트/문자열 조각을 순서대로 받아 완성된 라인만 분류해 돌려주며,
    잘린 마지막 라인은 다음 조각이 올 때까지 보관합니다.

    Example:
        >>> classifier = EncoderOutputClassifier()
        >>> classifier.feed(b"frame=  10 fps=5.0\\rframe=  2")
        [OutputSignal(signal=<SignalClass.PROGRESS: 'PROGRESS'>, line='frame=  10 fps=5.0')]
        >>> classifier.flush()
        [OutputSignal(signal=<SignalClass.PROGRESS: 'PROGRESS'>, line='frame=  2')]
    """

    def __init__(self, rules: Iterable[ClassifierRule] | None = None) -> None:
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES
        self._buffer = ""
        # 조각 경계에서 잘린 멀티바이트 문자를 다음 조각까지 보관
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def rules(self) -> tuple[ClassifierRule, ...]:
        return self._rules

    def classify(self, line: str) -> SignalClass:
        """한 라인을 분류합니다."""
        for rule in self._rules:
            if rule.matches(line):
                return rule.signal
        return SignalClass.INFO

    def feed(self, chunk: bytes | str) -> list[OutputSignal]:
        """
        출력 조각을 추가하고 완성된 라인의 분류 결과를 반환합니다.

        빈 라인은 건너뜁니다.
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)

        data = self._buffer + chunk
        # \r\n 이 조각 경계에서 잘린 경우를 위해 끝의 \r 은 다음 조각까지 보류
        pending_cr = data.endswith("\r")
        if pending_cr:
            data = data[:-1]

        parts = _LINE_SPLIT.split(data)
        self._buffer = parts.pop() + ("\r" if pending_cr else "")
        if len(self._buffer) > MAX_LINE_LENGTH:
            parts.append(self._buffer)
            self._buffer = ""
        return self._classify_lines(parts)

    def flush(self) -> list[OutputSignal]:
        """보관 중인 마지막 라인을 분류하고 버퍼를 비웁니다."""
        remaining, self._buffer = self._buffer + self._decoder.decode(b"", final=True), ""
        return self._classify_lines(_LINE_SPLIT.split(remaining))

    def _classify_lines(self, lines: Iterable[str]) -> list[OutputSignal]:
        signals = []
        for raw in lines:
            line = raw.strip()
            if line:
                signals.append(OutputSignal(self.classify(line), line))
        return signals
