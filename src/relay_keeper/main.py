"""
relay-keeper 진입점

애플리케이션 초기화, 컴포넌트 배선, FastAPI 서버 시작을 담당합니다.
"""

from __future__ import annotations

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI

from relay_keeper.application.stream.convergence import ConvergenceLoop
from relay_keeper.application.stream.supervisor import ProcessSupervisor
from relay_keeper.common.errors import ConfigError, ErrorCode
from relay_keeper.common.logging import configure_logging, get_logger
from relay_keeper.domain.interfaces.registry import CameraRegistry
from relay_keeper.infrastructure.registry import (
    InMemoryCameraRegistry,
    JsonFileCameraRegistry,
)
from relay_keeper.infrastructure.relay.probe import RelayProbe
from relay_keeper.interface.api.app import create_app
from relay_keeper.interface.api.dependencies import AppContext, set_app_context
from relay_keeper.interface.config.loader import ConfigLoader
from relay_keeper.interface.config.schema import AppConfig

logger = get_logger(__name__)


def build_registry(config: AppConfig) -> CameraRegistry:
    """설정에 맞는 카메라 레지스트리를 생성합니다."""
    if config.registry.backend == "memory":
        logger.warning("인메모리 레지스트리 사용: 재시작 시 카메라가 복원되지 않습니다")
        return InMemoryCameraRegistry()
    return JsonFileCameraRegistry(config.registry.path)


def build_components(
    config: AppConfig,
    loader: ConfigLoader | None = None,
    registry: CameraRegistry | None = None,
) -> AppContext:
    """
    모든 컴포넌트를 생성하고 배선합니다.

    Args:
        config: 검증된 설정
        loader: 설정 로더 (None이면 기본 로더)
        registry: 외부에서 주입할 레지스트리 (None이면 설정으로 생성)

    Returns:
        AppContext
    """
    loader = loader or ConfigLoader()
    ok, errors = loader.validate(config)
    if not ok:
        raise ConfigError(
            ErrorCode.CONFIG_INVALID,
            "설정 교차 검증 실패",
            details={"errors": errors},
        )

    registry = registry if registry is not None else build_registry(config)
    endpoints = loader.to_endpoints(config)
    probe = RelayProbe(endpoints, request_timeout=config.supervisor.request_timeout)

    supervisor = ProcessSupervisor(
        registry=registry,
        endpoints=endpoints,
        probe=probe,
        settings=loader.to_supervisor_settings(config),
        restart_policy=loader.to_restart_policy(config),
        encoder_path=config.encoder.path,
    )

    monitor = config.monitor
    convergence = ConvergenceLoop(
        supervisor,
        registry,
        check_interval=monitor.check_interval,
        initial_delay=monitor.initial_delay,
        recheck_delay=monitor.recheck_delay,
        settle_delay=monitor.settle_delay,
        startup_spacing=monitor.startup_spacing,
    )

    logger.info(
        "컴포넌트 초기화 완료",
        relay_public_base=endpoints.public_base,
        encoder=config.encoder.path,
        registry=config.registry.backend,
    )

    return AppContext(
        config=config,
        registry=registry,
        supervisor=supervisor,
        convergence=convergence,
        config_loader=loader,
        close_funcs=[probe.aclose],
    )


async def _startup(context: AppContext) -> None:
    """시작 시 복원 후 주기 점검 시작"""
    monitor = context.config.monitor
    try:
        if monitor.restore_on_startup:
            await context.convergence.restore_streams()
    except Exception as e:
        logger.error(f"스트림 복원 오류: {e}", error=str(e))

    if monitor.enabled and not context.supervisor.is_shutting_down:
        context.convergence.start()
        logger.info("24/7 송출 감시 활성화")


async def shutdown_components(context: AppContext) -> None:
    """모든 컴포넌트를 종료합니다."""
    logger.info("컴포넌트 종료 시작")

    await context.convergence.stop()

    try:
        await context.supervisor.stop_all()
    except Exception as e:
        logger.error(f"스트림 종료 오류: {e}", error=str(e))

    try:
        updated = await context.registry.update_many(
            {"streaming": True},
            {"streaming": False, "process_id": None},
        )
        logger.info(f"레지스트리 정리: {updated}개 카메라 송출 중지 표시")
    except Exception as e:
        logger.error(f"레지스트리 정리 오류: {e}", error=str(e))

    for close_func in context.close_funcs:
        try:
            await close_func()
        except Exception as e:
            logger.error(f"리소스 종료 오류: {e}", error=str(e))

    logger.info("컴포넌트 종료 완료")


def create_service_app(context: AppContext) -> FastAPI:
    """컨텍스트가 배선된 FastAPI 앱을 생성합니다 (lifespan 포함)."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        startup_task = asyncio.create_task(_startup(context), name="relay-keeper-startup")
        try:
            yield
        finally:
            if not startup_task.done():
                startup_task.cancel()
                try:
                    await startup_task
                except asyncio.CancelledError:
                    pass
            await shutdown_components(context)

    app = create_app(
        allowed_origins=context.config.server.cors_origins,
        lifespan=lifespan,
    )
    set_app_context(app, context)
    return app


def main() -> None:
    """메인 진입점."""
    import uvicorn

    config_path = os.getenv("CONFIG_PATH", "config.json")

    try:
        loader = ConfigLoader()
        config = loader.load(Path(config_path))

        obs = config.observability
        configure_logging(
            level=obs.log_level,
            json_output=obs.log_format == "json",
            log_file=obs.log_file,
        )

        context = build_components(config, loader)
        app = create_service_app(context)

        host = config.server.host
        port = config.server.port
        logger.info(f"서버 시작: http://{host}:{port}")

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
        )

    except KeyboardInterrupt:
        logger.info("사용자 중단")
    except Exception as e:
        logger.exception("초기화 오류", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
