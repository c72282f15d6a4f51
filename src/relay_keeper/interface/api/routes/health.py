"""
헬스 체크 엔드포인트
"""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Depends

from relay_keeper.application.stream.convergence import ConvergenceLoop
from relay_keeper.application.stream.supervisor import ProcessSupervisor
from relay_keeper.interface.api.dependencies import get_convergence, get_supervisor

router = APIRouter(tags=["health"])


@router.get("/health/live")
async def health_live() -> dict[str, str]:
    """라이브니스 체크 (단순 200)."""
    return {"status": "live"}


@router.get("/health")
async def health(
    supervisor: ProcessSupervisor = Depends(get_supervisor),
    convergence: ConvergenceLoop = Depends(get_convergence),
) -> dict[str, Any]:
    """통합 헬스 체크 (활성 스트림 + 수렴 루프 상태)."""
    streams = supervisor.get_active_streams()
    return {
        "status": "healthy",
        "ts": time.time(),
        "active_streams": len(streams),
        "streams": streams,
        "monitoring": convergence.is_running,
    }


@router.get("/api/stats/supervisor")
async def supervisor_stats(
    supervisor: ProcessSupervisor = Depends(get_supervisor),
    convergence: ConvergenceLoop = Depends(get_convergence),
) -> dict[str, Any]:
    """감독자/수렴 루프 통계."""
    return {
        "success": True,
        "data": {
            "supervisor": supervisor.get_stats(),
            "convergence": convergence.get_stats(),
        },
    }
