"""
에러 처리 모듈

relay-keeper 전체에서 사용하는 예외 클래스와 에러 코드를 정의합니다.
모든 예외는 RelayKeeperError를 상속받아 일관된 에러 처리가 가능합니다.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """
    에러 코드 열거형

    HTTP 상태 코드와 매핑되어 REST API 응답에 사용됩니다.
    """

    # 스트림 관련 (4xx, 5xx)
    STREAM_NOT_FOUND = "STREAM_NOT_FOUND"                   # 스트림 없음
    STREAM_START_FAILED = "STREAM_START_FAILED"             # 인코더 프로세스 핸들 획득 실패
    STREAM_VALIDATION_TIMEOUT = "STREAM_VALIDATION_TIMEOUT" # 릴레이 준비 확인 실패 (비치명)
    STREAM_UNEXPECTED_EXIT = "STREAM_UNEXPECTED_EXIT"       # 검증 이후 프로세스 종료
    STREAM_EARLY_EXIT = "STREAM_EARLY_EXIT"                 # 검증 이전 프로세스 종료

    # 카메라 레지스트리 관련
    CAMERA_NOT_FOUND = "CAMERA_NOT_FOUND"           # 카메라 레코드 없음
    CAMERA_INACTIVE = "CAMERA_INACTIVE"             # 비활성 카메라
    REGISTRY_WRITE_FAILED = "REGISTRY_WRITE_FAILED" # 레지스트리 쓰기 실패
    REGISTRY_READ_FAILED = "REGISTRY_READ_FAILED"   # 레지스트리 읽기 실패

    # 설정 관련 (4xx)
    CONFIG_INVALID = "CONFIG_INVALID"           # 설정 검증 실패
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"       # 설정 파일 없음
    CONFIG_PARSE_ERROR = "CONFIG_PARSE_ERROR"   # 설정 파싱 오류

    # 일반 (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"           # 내부 오류


# 에러 코드 → HTTP 상태 코드 매핑
_ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    # 4xx Client Errors
    ErrorCode.STREAM_NOT_FOUND: 404,
    ErrorCode.CAMERA_NOT_FOUND: 404,
    ErrorCode.CONFIG_NOT_FOUND: 404,

    ErrorCode.CAMERA_INACTIVE: 400,
    ErrorCode.CONFIG_INVALID: 400,
    ErrorCode.CONFIG_PARSE_ERROR: 400,

    # 5xx Server Errors
    ErrorCode.STREAM_VALIDATION_TIMEOUT: 504,

    ErrorCode.STREAM_START_FAILED: 500,
    ErrorCode.STREAM_UNEXPECTED_EXIT: 500,
    ErrorCode.STREAM_EARLY_EXIT: 500,
    ErrorCode.REGISTRY_WRITE_FAILED: 500,
    ErrorCode.REGISTRY_READ_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_http_status(error_code: ErrorCode) -> int:
    """
    에러 코드에 해당하는 HTTP 상태 코드를 반환합니다.

    Args:
        error_code: 에러 코드

    Returns:
        HTTP 상태 코드 (기본값: 500)
    """
    return _ERROR_CODE_TO_HTTP_STATUS.get(error_code, 500)


class RelayKeeperError(Exception):
    """
    relay-keeper 기본 예외 클래스

    모든 커스텀 예외의 부모 클래스입니다.
    에러 코드, 메시지, 상세 정보를 포함합니다.

    Attributes:
        code: 에러 코드 (ErrorCode)
        message: 사용자에게 표시할 메시지
        details: 추가 상세 정보 (디버깅용)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def http_status(self) -> int:
        """HTTP 상태 코드 반환"""
        return get_http_status(self.code)

    def to_dict(self) -> dict[str, Any]:
        """
        예외 정보를 딕셔너리로 변환합니다.

        REST API 응답에서 사용됩니다.
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


class StreamError(RelayKeeperError):
    """
    스트림 관련 예외

    인코더 프로세스의 시작, 종료, 검증 중 발생하는 오류를 나타냅니다.

    Attributes:
        stream_id: 오류가 발생한 스트림 이름
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        stream_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.stream_id = stream_id
        _details = {"stream_id": stream_id}
        if details:
            _details.update(details)
        super().__init__(code, message, _details)


class StreamStartError(StreamError):
    """
    스트림 시작 실패

    인코더 프로세스가 OS 핸들을 얻지 못한 경우에만 발생하며,
    호출자에게 그대로 전파됩니다.
    """

    def __init__(
        self,
        message: str,
        stream_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(ErrorCode.STREAM_START_FAILED, message, stream_id, details)


class RegistryError(RelayKeeperError):
    """
    카메라 레지스트리 관련 예외

    스트림 동작에 동반되는 레지스트리 쓰기 실패는 항상 로그로만 남기고 흡수합니다.

    Attributes:
        operation: 실패한 연산 이름 (find, update_one, save 등)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        operation: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.operation = operation
        _details: dict[str, Any] = {"operation": operation}
        if details:
            _details.update(details)
        super().__init__(code, message, _details)


class ConfigError(RelayKeeperError):
    """
    설정 관련 예외

    설정 파일의 로드, 파싱, 검증 중 발생하는 오류를 나타냅니다.

    Attributes:
        config_path: 오류가 발생한 설정 파일 경로 (선택)
        field_name: 오류가 발생한 필드 이름 (선택)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        config_path: str | None = None,
        field_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.config_path = config_path
        self.field_name = field_name
        _details: dict[str, Any] = {}
        if config_path:
            _details["config_path"] = config_path
        if field_name:
            _details["field_name"] = field_name
        if details:
            _details.update(details)
        super().__init__(code, message, _details)

