"""
FastAPI dependency wiring.

Interface 계층에서 사용할 의존성을 관리합니다.
Composition Root(main.py)에서 set_app_context로 주입합니다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable

from fastapi import Depends, FastAPI, Request

from relay_keeper.application.stream.convergence import ConvergenceLoop
from relay_keeper.application.stream.supervisor import ProcessSupervisor
from relay_keeper.domain.interfaces.registry import CameraRegistry
from relay_keeper.interface.config.loader import ConfigLoader
from relay_keeper.interface.config.schema import AppConfig


@dataclass
class AppContext:
    config: AppConfig
    registry: CameraRegistry
    supervisor: ProcessSupervisor
    convergence: ConvergenceLoop
    config_loader: ConfigLoader
    close_funcs: list[Callable[[], Awaitable[None]]] = field(default_factory=list)


def set_app_context(app: FastAPI, context: AppContext) -> None:
    """FastAPI app.state에 AppContext를 저장합니다"""
    app.state.app_context = context


def get_app_context(request: Request) -> AppContext:
    context: AppContext | None = getattr(request.app.state, "app_context", None)
    if context is None:
        raise RuntimeError("AppContext가 설정되지 않았습니다")
    return context


def get_supervisor(context: AppContext = Depends(get_app_context)) -> ProcessSupervisor:
    return context.supervisor


def get_registry(context: AppContext = Depends(get_app_context)) -> CameraRegistry:
    return context.registry


def get_convergence(context: AppContext = Depends(get_app_context)) -> ConvergenceLoop:
    return context.convergence
