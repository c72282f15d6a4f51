"""
카메라 관리 API

레지스트리의 카메라 레코드를 관리하고 감독자를 통해 송출을 제어합니다.
응답의 streaming 값은 레지스트리 값에 감독자의 실시간 상태를 덧씌운 것입니다.
"""

from __future__ import annotations

import random
import time
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator

from relay_keeper.application.stream.supervisor import ProcessSupervisor
from relay_keeper.common.errors import ErrorCode, RelayKeeperError, StreamStartError
from relay_keeper.common.logging import get_logger
from relay_keeper.domain.interfaces.registry import CameraRegistry
from relay_keeper.domain.models.camera import CameraRecord
from relay_keeper.interface.api.dependencies import get_registry, get_supervisor

logger = get_logger(__name__)

router = APIRouter(prefix="/api/camera", tags=["camera"])

DEFAULT_WORKSPACE = "default_workspace"


# === DTO 정의 ===


class CameraAddRequest(BaseModel):
    rtsp_url: str = Field(..., description="카메라 RTSP URL")
    workspace_id: str | None = Field(None, description="워크스페이스 ID")
    name: str | None = Field(None, description="표시 이름")

    @field_validator("rtsp_url")
    @classmethod
    def not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("rtsp_url은 필수입니다")
        return value


class CameraSummary(BaseModel):
    id: str
    name: str
    stream_name: str
    public_url: str
    streaming: bool


class CameraAddResponse(BaseModel):
    success: bool = True
    message: str
    camera: CameraSummary


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    public_url: str | None = None


# === 유틸 ===


def generate_stream_name() -> str:
    """cam_{밀리초}_{0~9999} 형식의 스트림 이름"""
    return f"cam_{int(time.time() * 1000)}_{random.randint(0, 9999)}"


async def _get_camera_or_404(registry: CameraRegistry, camera_id: str) -> CameraRecord:
    camera = await registry.find_one({"camera_id": camera_id})
    if camera is None:
        raise RelayKeeperError(
            ErrorCode.CAMERA_NOT_FOUND,
            "카메라를 찾을 수 없습니다",
            details={"camera_id": camera_id},
        )
    return camera


def _live_view(camera: CameraRecord, supervisor: ProcessSupervisor) -> dict[str, Any]:
    """레지스트리 레코드에 감독자 실시간 상태를 덧씌웁니다."""
    running = supervisor.is_stream_running(camera.stream_name)
    info = supervisor.get_process_info(camera.stream_name)
    data = camera.to_dict(mask=True)
    data["id"] = camera.camera_id
    data["streaming"] = running or camera.streaming
    data["process_id"] = (info.pid if info else None) or camera.process_id
    data["uptime"] = int(info.uptime_seconds(time.time())) if info else 0
    return data


# === 엔드포인트 ===


@router.post("/add", response_model=CameraAddResponse)
async def add_camera(
    payload: CameraAddRequest,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> CameraAddResponse:
    """
    카메라를 등록하고 즉시 송출을 시작합니다.

    시작에 실패해도 레코드는 유지되며 수렴 루프가 다시 시도합니다.
    """
    stream_name = generate_stream_name()
    camera = await registry.save(
        CameraRecord(
            stream_name=stream_name,
            source_uri=payload.rtsp_url,
            name=payload.name or f"Camera_{int(time.time() * 1000)}",
            workspace_id=payload.workspace_id or DEFAULT_WORKSPACE,
            public_url=supervisor.get_public_url(stream_name),
            active=True,
            streaming=False,
        )
    )

    logger.info(f"카메라 등록, 송출 시작: {stream_name}", stream_id=stream_name)
    try:
        camera.public_url = await supervisor.start(camera.source_uri, stream_name)
        camera.streaming = supervisor.is_stream_running(stream_name)
        await registry.update_one(
            {"stream_name": stream_name},
            {"public_url": camera.public_url, "streaming": camera.streaming},
        )
    except StreamStartError as e:
        logger.error(
            f"송출 시작 실패, 수렴 루프가 재시도: {stream_name} - {e.message}",
            stream_id=stream_name,
        )
        camera.streaming = False

    return CameraAddResponse(
        message="Camera added and streaming started",
        camera=CameraSummary(
            id=camera.camera_id,
            name=camera.name,
            stream_name=camera.stream_name,
            public_url=camera.public_url,
            streaming=camera.streaming,
        ),
    )


@router.get("/list")
async def list_cameras(
    workspace_id: str | None = Query(None, description="워크스페이스 필터"),
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> dict[str, Any]:
    """카메라 목록 (최근 등록 순)"""
    query = {"workspace_id": workspace_id} if workspace_id else {}
    cameras = sorted(await registry.find(query), key=lambda c: c.created_at, reverse=True)
    items = [_live_view(camera, supervisor) for camera in cameras]

    return {
        "success": True,
        "cameras": items,
        "count": len(items),
        "active_streams": sum(1 for item in items if item["streaming"]),
        "ts": time.time(),
    }


@router.get("/status/{stream_name}")
async def stream_status(
    stream_name: str,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> dict[str, Any]:
    """스트림 이름으로 실시간 상태 조회"""
    camera = await registry.find_one({"stream_name": stream_name})
    if camera is None:
        raise RelayKeeperError(
            ErrorCode.STREAM_NOT_FOUND,
            "스트림을 찾을 수 없습니다",
            details={"stream_name": stream_name},
        )

    info = supervisor.get_process_info(stream_name)
    return {
        "success": True,
        "stream_name": stream_name,
        "streaming": supervisor.is_stream_running(stream_name),
        "starting": supervisor.is_stream_starting(stream_name),
        "process_id": info.pid if info else None,
        "restart_count": info.restart_count if info else 0,
        "uptime": int(info.uptime_seconds(time.time())) if info else 0,
        "public_url": camera.public_url,
        "rtsp_url": camera.to_dict(mask=True)["source_uri"],
        "active": camera.active,
        "last_checked": camera.last_checked,
        "ts": time.time(),
    }


@router.get("/{camera_id}")
async def get_camera(
    camera_id: str,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> dict[str, Any]:
    camera = await _get_camera_or_404(registry, camera_id)
    return {"success": True, "camera": _live_view(camera, supervisor)}


@router.put("/{camera_id}/start", response_model=MessageResponse)
async def start_camera(
    camera_id: str,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> MessageResponse:
    """활성 카메라의 송출 시작 (시작 실패는 500)"""
    camera = await _get_camera_or_404(registry, camera_id)
    if not camera.active:
        raise RelayKeeperError(
            ErrorCode.CAMERA_INACTIVE,
            "비활성 카메라입니다",
            details={"camera_id": camera_id},
        )

    public_url = await supervisor.start(camera.source_uri, camera.stream_name)
    await registry.update_one(
        {"camera_id": camera_id},
        {"public_url": public_url, "streaming": supervisor.is_stream_running(camera.stream_name)},
    )
    return MessageResponse(message="Streaming started", public_url=public_url)


@router.put("/{camera_id}/stop", response_model=MessageResponse)
async def stop_camera(
    camera_id: str,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> MessageResponse:
    """
    송출 중지. active는 그대로이므로 수렴 루프가 다시 시작할 수 있습니다.
    """
    camera = await _get_camera_or_404(registry, camera_id)
    await supervisor.stop(camera.stream_name)
    await registry.update_one({"camera_id": camera_id}, {"streaming": False, "process_id": None})
    return MessageResponse(message="Streaming stopped")


@router.put("/{camera_id}/activate", response_model=MessageResponse)
async def activate_camera(
    camera_id: str,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> MessageResponse:
    camera = await _get_camera_or_404(registry, camera_id)
    await registry.update_one({"camera_id": camera_id}, {"active": True})

    public_url = None
    try:
        public_url = await supervisor.start(camera.source_uri, camera.stream_name)
        await registry.update_one(
            {"camera_id": camera_id},
            {"public_url": public_url, "streaming": supervisor.is_stream_running(camera.stream_name)},
        )
    except StreamStartError as e:
        logger.error(
            f"활성화 후 송출 시작 실패: {camera.stream_name} - {e.message}",
            stream_id=camera.stream_name,
        )

    return MessageResponse(message="Camera activated", public_url=public_url)


@router.put("/{camera_id}/deactivate", response_model=MessageResponse)
async def deactivate_camera(
    camera_id: str,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> MessageResponse:
    """비활성화 후 중지 (자동 재시작이 비활성 상태를 보도록 순서 유지)"""
    camera = await _get_camera_or_404(registry, camera_id)
    await registry.update_one({"camera_id": camera_id}, {"active": False})
    await supervisor.stop(camera.stream_name)
    await registry.update_one({"camera_id": camera_id}, {"streaming": False, "process_id": None})
    return MessageResponse(message="Camera deactivated")


@router.delete("/{camera_id}", response_model=MessageResponse)
async def delete_camera(
    camera_id: str,
    registry: CameraRegistry = Depends(get_registry),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> MessageResponse:
    camera = await _get_camera_or_404(registry, camera_id)
    await registry.delete_one({"camera_id": camera_id})
    await supervisor.stop(camera.stream_name)
    return MessageResponse(message="Camera deleted")
