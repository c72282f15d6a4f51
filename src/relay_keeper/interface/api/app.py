"""
FastAPI 애플리케이션 팩토리

Interface Layer에서만 FastAPI에 의존합니다.
예외 핸들러, CORS, 라우터 등록을 담당합니다.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from relay_keeper import __version__
from relay_keeper.common.errors import ErrorCode, RelayKeeperError
from relay_keeper.common.logging import get_logger, get_trace_id, set_trace_id
from relay_keeper.interface.api.routes import cameras, health

logger = get_logger(__name__)

TRACE_HEADER = "X-Trace-Id"


def create_app(
    allowed_origins: Iterable[str] | None = None,
    lifespan: Callable[[FastAPI], Any] | None = None,
) -> FastAPI:
    """
    FastAPI 애플리케이션을 생성합니다.

    Args:
        allowed_origins: CORS 허용 오리진 목록
        lifespan: 시작/종료 처리 (main.py에서 주입)
    """
    app = FastAPI(title="relay-keeper API", version=__version__, lifespan=lifespan)

    # CORS
    origins = list(allowed_origins) if allowed_origins else []
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials="*" not in origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def bind_trace_id(request: Request, call_next: Callable[[Request], Any]) -> Any:
        """요청마다 trace_id를 바인딩하고 응답 헤더로 돌려줍니다."""
        set_trace_id(request.headers.get(TRACE_HEADER))
        trace_id = get_trace_id()
        try:
            response = await call_next(request)
        finally:
            set_trace_id(None)
        response.headers[TRACE_HEADER] = trace_id
        return response

    # 예외 핸들러 등록
    @app.exception_handler(RelayKeeperError)
    async def handle_relay_keeper_error(_: Request, exc: RelayKeeperError) -> JSONResponse:
        """RelayKeeperError → JSON 응답 매핑."""
        logger.error(
            "RelayKeeperError 발생",
            code=exc.code.value,
            error_msg=exc.message,
            details=exc.details,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content={"success": False, "message": exc.message, "code": exc.code.value},
        )

    @app.exception_handler(RequestValidationError)
    @app.exception_handler(ValidationError)
    async def handle_validation_error(_: Request, exc: Any) -> JSONResponse:
        """요청/Pydantic 검증 오류 → 422 응답."""
        errors = exc.errors()
        logger.error("검증 오류", errors=errors)
        error_msg = "입력 데이터 검증 실패"
        if errors:
            first_error = errors[0]
            error_msg = f"{first_error.get('loc', [''])}: {first_error.get('msg', '검증 실패')}"
        return JSONResponse(
            status_code=422,
            content={"success": False, "message": error_msg},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(_: Request, exc: Exception) -> JSONResponse:
        """알 수 없는 예외 → 500 응답."""
        logger.error("알 수 없는 오류", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "서버 오류가 발생했습니다",
                "code": ErrorCode.INTERNAL_ERROR.value,
            },
        )

    # 라우터 등록
    app.include_router(health.router)
    app.include_router(cameras.router)

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "message": "relay-keeper API",
            "version": __version__,
            "status": "running",
            "health": "/health",
            "api": {
                "add_camera": "/api/camera/add",
                "list_cameras": "/api/camera/list",
            },
        }

    return app
