"""
인코더 프로세스 인터페이스

Supervisor가 사용하는 OS 프로세스 핸들과 생성/생존 확인 기능을 정의합니다.
asyncio.subprocess.Process가 이 프로토콜을 그대로 만족하며,
테스트에서는 가짜 핸들로 대체할 수 있습니다.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Protocol


class ProcessHandle(Protocol):
    """OS 프로세스 핸들"""

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    @property
    def stderr(self) -> asyncio.StreamReader | None: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


# argv → 실행된 프로세스 핸들 (실행 불가 시 OSError)
ProcessSpawner = Callable[[list[str]], Awaitable[ProcessHandle]]

# 프로세스 핸들 → OS 수준 생존 여부
LivenessCheck = Callable[[ProcessHandle], bool]
