# -*- coding: utf-8 -*-
"""
인코더 프로세스 실행기.

외부 인코더(FFmpeg)를 고정된 인자 템플릿으로 실행하고
OS 수준 생존 여부를 확인하는 기능을 제공합니다.
"""

from __future__ import annotations

import asyncio
import subprocess

import psutil

from relay_keeper.common.logging import get_logger
from relay_keeper.domain.interfaces.process import ProcessHandle

logger = get_logger(__name__)

DEFAULT_ENCODER_PATH = "ffmpeg"


def build_encoder_command(
    encoder_path: str,
    source: str,
    push_target: str,
) -> list[str]:
    """
    인코더 명령 구성.

    인자 템플릿은 고정이며 소스 URI와 푸시 대상 URI만 바뀝니다.
    인코딩 파라미터는 계산하지 않고 그대로 전달합니다.

    Args:
        encoder_path: 인코더 실행 파일 경로
        source: 풀(pull) 방식 소스 URI (예: rtsp://...)
        push_target: 릴레이 푸시 URI ({push-base}/{stream_name})
    """
    return [
        encoder_path,
        "-hide_banner",
        "-loglevel", "warning",
        # 입력: RTSP over TCP, 끊김 시 인코더 내부 재연결
        "-rtsp_transport", "tcp",
        "-rtsp_flags", "prefer_tcp",
        "-reconnect", "1",
        "-reconnect_at_eof", "1",
        "-reconnect_streamed", "1",
        "-reconnect_delay_max", "2",
        "-fflags", "+genpts+nobuffer",
        "-use_wallclock_as_timestamps", "1",
        "-allowed_media_types", "video",
        "-i", source,
        # 출력: 저지연 H.264 baseline
        "-map", "0:v:0",
        "-c:v", "libx264",
        "-preset", "veryfast",
        "-tune", "zerolatency",
        "-profile:v", "baseline",
        "-level", "3.1",
        "-pix_fmt", "yuv420p",
        "-g", "30",
        "-keyint_min", "30",
        "-x264-params", "scenecut=0:sync-lookahead=0:sliced-threads=1",
        "-b:v", "2.5M",
        "-maxrate", "2.5M",
        "-bufsize", "5M",
        "-f", "rtsp",
        "-rtsp_transport", "tcp",
        "-rtsp_flags", "prefer_tcp",
        "-muxdelay", "0",
        "-strict", "experimental",
        push_target,
    ]


async def spawn_encoder(argv: list[str]) -> ProcessHandle:
    """
    인코더 프로세스를 시작합니다.

    stdin/stdout은 DEVNULL (데드락 방지), stderr는 PIPE로 연결하며
    호출자가 EOF까지 계속 읽어야 합니다.

    Raises:
        OSError: 실행 파일이 없거나 실행할 수 없는 경우
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
    )
    logger.debug("인코더 프로세스 생성", pid=process.pid, executable=argv[0])
    return process


def process_is_alive(process: ProcessHandle | None) -> bool:
    """
    OS 수준에서 프로세스가 살아 있는지 확인합니다 (signal 0 과 동등).

    이미 회수된 종료 코드가 있거나, PID가 없거나, 좀비 상태면 False입니다.
    """
    if process is None or process.returncode is not None:
        return False

    pid = process.pid
    if not pid:
        return False

    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        # 접근 권한이 없어도 PID가 존재하면 살아 있는 것으로 본다
        return psutil.pid_exists(pid)
