"""
relay-keeper - RTSP 카메라 24/7 릴레이 감시 서비스

REST API로 등록된 RTSP 카메라 피드를 외부 인코더 프로세스로 트랜스코딩하여
미디어 릴레이 서버로 재송출하고, 네트워크 단절이나 인코더 크래시,
서비스 재시작이 있어도 모든 활성 카메라가 계속 송출되도록 유지합니다.
"""

__version__ = "0.1.0"
__author__ = "relay-keeper Team"

from relay_keeper.common.errors import (
    RelayKeeperError,
    StreamError,
    StreamStartError,
    ConfigError,
    ErrorCode,
)
from relay_keeper.common.logging import get_logger

__all__ = [
    "__version__",
    "RelayKeeperError",
    "StreamError",
    "StreamStartError",
    "ConfigError",
    "ErrorCode",
    "get_logger",
]
