# -*- coding: utf-8 -*-
"""
릴레이 서버 Infrastructure 패키지.

릴레이 URL 규칙과 HTTP 준비 상태 프로브를 제공합니다.
"""

from relay_keeper.infrastructure.relay.probe import RelayEndpoints, RelayProbe

__all__ = ["RelayEndpoints", "RelayProbe"]
