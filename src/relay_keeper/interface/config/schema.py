"""
설정 스키마 (Pydantic v2)

config.json을 검증하기 위한 스키마를 정의합니다.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Pydantic 모델은 Interface Layer에서만 외부 라이브러리에 의존합니다.


class RelayConfig(BaseModel):
    """릴레이 서버 설정 스키마."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    host: str = Field("localhost", description="릴레이 서버 호스트")
    rtsp_port: int = Field(8554, description="RTSP 푸시 포트")
    http_port: int = Field(8888, description="HTTP 재생 포트")
    protocol: Literal["http", "https", "auto"] = Field("http", description="공개 URL 프로토콜")
    user: str = Field("", description="푸시 계정")
    password: str = Field("", description="푸시 비밀번호")

    @field_validator("host")
    @classmethod
    def validate_host(cls, value: str) -> str:
        if not value:
            raise ValueError("relay.host는 비워둘 수 없습니다")
        return value

    @field_validator("rtsp_port", "http_port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("포트는 1~65535 범위여야 합니다")
        return value

    @property
    def push_base(self) -> str:
        """인코더 푸시 기본 URI (계정이 모두 있으면 포함)"""
        if self.user and self.password:
            return f"rtsp://{self.user}:{self.password}@{self.host}:{self.rtsp_port}"
        return f"rtsp://{self.host}:{self.rtsp_port}"

    @property
    def public_base(self) -> str:
        """공개 재생 기본 URL"""
        protocol = self.protocol
        if protocol == "auto":
            is_local = "localhost" in self.host or "127.0.0.1" in self.host
            protocol = "http" if is_local else "https"
        return f"{protocol}://{self.host}:{self.http_port}"


class EncoderConfig(BaseModel):
    """인코더 설정 스키마."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    path: str = Field("ffmpeg", description="인코더 실행 파일 경로")

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: str) -> str:
        if not value:
            raise ValueError("encoder.path는 비워둘 수 없습니다")
        return value


class SupervisorConfig(BaseModel):
    """프로세스 감독자 설정 스키마."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    handle_check_delay: float = Field(3.0, description="OS 핸들 확인 대기 (초)")
    validation_delay: float = Field(2.0, description="릴레이 검증 시작 대기 (초)")
    relay_ready_timeout: float = Field(20.0, description="릴레이 준비 최대 대기 (초)")
    relay_poll_interval: float = Field(1.0, description="릴레이 확인 간격 (초)")
    request_timeout: float = Field(2.0, description="릴레이 HTTP 요청 타임아웃 (초)")
    start_timeout: float = Field(30.0, description="start 대기 상한 (초)")
    stop_grace_seconds: float = Field(5.0, description="정상 종료 유예 (초)")

    restart_base_delay: float = Field(2.0, description="재시작 기본 대기 (초)")
    restart_multiplier: float = Field(1.5, description="재시작 대기 배수")
    restart_max_delay: float = Field(30.0, description="재시작 최대 대기 (초)")
    max_restarts: int = Field(10, description="자동 재시작 최대 횟수")

    @model_validator(mode="after")
    def validate_values(self) -> "SupervisorConfig":
        for name in (
            "handle_check_delay",
            "validation_delay",
            "relay_ready_timeout",
            "start_timeout",
            "stop_grace_seconds",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name}는 0 이상이어야 합니다")
        if self.relay_poll_interval <= 0:
            raise ValueError("relay_poll_interval은 0보다 커야 합니다")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout은 0보다 커야 합니다")
        if self.restart_base_delay <= 0:
            raise ValueError("restart_base_delay는 0보다 커야 합니다")
        if self.restart_multiplier < 1.0:
            raise ValueError("restart_multiplier는 1 이상이어야 합니다")
        if self.max_restarts < 0:
            raise ValueError("max_restarts는 0 이상이어야 합니다")
        return self


class MonitorConfig(BaseModel):
    """수렴 루프 설정 스키마."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    enabled: bool = Field(True, description="주기 점검 활성화")
    restore_on_startup: bool = Field(True, description="시작 시 활성 카메라 복원")
    check_interval: float = Field(15.0, description="주기 점검 간격 (초)")
    initial_delay: float = Field(5.0, description="첫 점검 대기 (초)")
    recheck_delay: float = Field(3.0, description="점검 중 재시작 후 확인 대기 (초)")
    settle_delay: float = Field(2.0, description="복원 중 시작 후 확인 대기 (초)")
    startup_spacing: float = Field(1.0, description="복원 시 카메라 간 간격 (초)")

    @model_validator(mode="after")
    def validate_values(self) -> "MonitorConfig":
        if self.check_interval <= 0:
            raise ValueError("check_interval은 0보다 커야 합니다")
        for name in ("initial_delay", "recheck_delay", "settle_delay", "startup_spacing"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name}는 0 이상이어야 합니다")
        return self


class RegistryConfig(BaseModel):
    """카메라 레지스트리 설정 스키마."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    backend: Literal["memory", "json"] = Field("json", description="레지스트리 종류")
    path: str = Field("data/cameras.json", description="JSON 레지스트리 파일 경로")


class ServerConfig(BaseModel):
    """HTTP 서버 설정 스키마."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    host: str = Field("0.0.0.0", description="바인딩 호스트")
    port: int = Field(9001, description="바인딩 포트")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="CORS 허용 출처")

    @field_validator("port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("server.port는 1~65535 범위여야 합니다")
        return value


class ObservabilityConfig(BaseModel):
    """관측 설정."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    log_level: str = Field("INFO", description="로그 레벨")
    log_format: Literal["console", "json"] = Field("console", description="로그 포맷")
    log_file: str | None = Field(None, description="로그 파일 경로")

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"}:
            raise ValueError(f"알 수 없는 로그 레벨: {value}")
        return level


class AppConfig(BaseModel):
    """애플리케이션 전체 설정 스키마."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        validate_assignment=True,
    )

    relay: RelayConfig = Field(default_factory=RelayConfig, description="릴레이 서버 설정")
    encoder: EncoderConfig = Field(default_factory=EncoderConfig, description="인코더 설정")
    supervisor: SupervisorConfig = Field(
        default_factory=SupervisorConfig,
        description="프로세스 감독자 설정",
    )
    monitor: MonitorConfig = Field(default_factory=MonitorConfig, description="수렴 루프 설정")
    registry: RegistryConfig = Field(default_factory=RegistryConfig, description="레지스트리 설정")
    server: ServerConfig = Field(default_factory=ServerConfig, description="HTTP 서버 설정")
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="관측 설정",
    )
