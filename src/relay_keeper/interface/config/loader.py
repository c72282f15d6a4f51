"""
설정 로더

config.json을 로드하고 Pydantic 스키마로 검증합니다.
환경변수 오버라이드를 적용하고, 검증된 설정을 런타임 구조
(SupervisorSettings, RestartPolicy, RelayEndpoints)로 변환합니다.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from relay_keeper.application.stream.supervisor import SupervisorSettings
from relay_keeper.common.errors import ConfigError, ErrorCode
from relay_keeper.common.logging import get_logger
from relay_keeper.domain.models.stream import RestartPolicy
from relay_keeper.infrastructure.relay.probe import RelayEndpoints

from .schema import AppConfig

logger = get_logger(__name__)

# 환경변수 → (섹션, 필드)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "PORT": ("server", "port"),
    "HOST": ("server", "host"),
    "RELAY_HOST": ("relay", "host"),
    "RELAY_RTSP_PORT": ("relay", "rtsp_port"),
    "RELAY_HTTP_PORT": ("relay", "http_port"),
    "RELAY_PROTOCOL": ("relay", "protocol"),
    "RELAY_USER": ("relay", "user"),
    "RELAY_PASS": ("relay", "password"),
    "FFMPEG_PATH": ("encoder", "path"),
    "REGISTRY_PATH": ("registry", "path"),
    "LOG_LEVEL": ("observability", "log_level"),
}


class ConfigLoader:
    """config.json 로딩 및 변환을 담당합니다."""

    def __init__(self, default_path: str = "config.json") -> None:
        self._default_path = Path(default_path)

    def load(
        self,
        path: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> AppConfig:
        """
        설정을 로드합니다.

        파일이 있으면 파일을, 없으면 기본값을 사용하고
        마지막으로 환경변수 오버라이드를 적용합니다.
        """
        target = Path(path) if path else self._default_path
        if target.exists():
            data = self._read_file(target)
            config_path: str | None = str(target)
        else:
            logger.info(f"설정 파일 없음, 기본값 사용: {target}")
            data = {}
            config_path = None

        data = self.apply_env_overrides(data, os.environ if environ is None else environ)
        return self.load_from_dict(data, config_path=config_path)

    def load_from_file(self, path: str | Path | None = None) -> AppConfig:
        """파일에서 설정을 로드하고 검증합니다."""
        target = Path(path) if path else self._default_path

        if not target.exists():
            raise ConfigError(
                ErrorCode.CONFIG_NOT_FOUND,
                f"설정 파일을 찾을 수 없습니다: {target}",
                config_path=str(target),
            )

        return self.load_from_dict(self._read_file(target), config_path=str(target))

    def _read_file(self, target: Path) -> dict[str, Any]:
        try:
            content = target.read_text(encoding="utf-8")
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(
                ErrorCode.CONFIG_PARSE_ERROR,
                f"설정 파일 파싱에 실패했습니다: {e}",
                config_path=str(target),
                details={"error": str(e)},
            ) from e

        if not isinstance(data, dict):
            raise ConfigError(
                ErrorCode.CONFIG_PARSE_ERROR,
                "설정 파일의 최상위는 객체여야 합니다",
                config_path=str(target),
            )
        return data

    def load_from_dict(
        self,
        data: dict[str, Any],
        config_path: str | None = None,
    ) -> AppConfig:
        """딕셔너리에서 설정을 검증합니다."""
        try:
            config = AppConfig.model_validate(data)
            return config
        except ValidationError as e:
            logger.error("설정 검증 실패", errors=e.errors(), config_path=config_path)
            raise ConfigError(
                ErrorCode.CONFIG_INVALID,
                "설정 검증에 실패했습니다",
                config_path=config_path,
                details={"errors": e.errors(include_url=False)},
            ) from e

    def apply_env_overrides(
        self,
        data: dict[str, Any],
        environ: Mapping[str, str],
    ) -> dict[str, Any]:
        """환경변수 값을 설정 딕셔너리에 덮어씁니다 (원본은 변경하지 않음)."""
        merged = copy.deepcopy(data)
        for env_name, (section, field_name) in ENV_OVERRIDES.items():
            value = environ.get(env_name)
            if value is None or value == "":
                continue
            merged.setdefault(section, {})[field_name] = value
            logger.debug(f"환경변수 오버라이드: {env_name} → {section}.{field_name}")
        return merged

    def validate(self, config: AppConfig) -> tuple[bool, list[str]]:
        """
        추가 교차 검증.
        - 릴레이 준비 대기 <= start 상한
        - 재시작 최대 대기 >= 기본 대기
        - 릴레이 포트 충돌
        """
        errors: list[str] = []

        sup = config.supervisor
        if sup.relay_ready_timeout > sup.start_timeout:
            errors.append("supervisor.relay_ready_timeout은 supervisor.start_timeout 이하여야 합니다")
        if sup.handle_check_delay >= sup.start_timeout:
            errors.append("supervisor.handle_check_delay는 supervisor.start_timeout보다 작아야 합니다")
        if sup.restart_max_delay < sup.restart_base_delay:
            errors.append("supervisor.restart_max_delay는 supervisor.restart_base_delay 이상이어야 합니다")

        if config.relay.rtsp_port == config.relay.http_port:
            errors.append("relay.rtsp_port와 relay.http_port가 같습니다")

        if config.registry.backend == "json" and not config.registry.path:
            errors.append("registry.path가 필요합니다 (backend=json)")

        return (len(errors) == 0), errors

    def to_supervisor_settings(self, config: AppConfig) -> SupervisorSettings:
        sup = config.supervisor
        return SupervisorSettings(
            handle_check_delay=sup.handle_check_delay,
            validation_delay=sup.validation_delay,
            relay_ready_timeout=sup.relay_ready_timeout,
            relay_poll_interval=sup.relay_poll_interval,
            start_timeout=sup.start_timeout,
            stop_grace_seconds=sup.stop_grace_seconds,
        )

    def to_restart_policy(self, config: AppConfig) -> RestartPolicy:
        sup = config.supervisor
        return RestartPolicy(
            base_delay=sup.restart_base_delay,
            multiplier=sup.restart_multiplier,
            max_delay=sup.restart_max_delay,
            max_restarts=sup.max_restarts,
        )

    def to_endpoints(self, config: AppConfig) -> RelayEndpoints:
        return RelayEndpoints(
            push_base=config.relay.push_base,
            public_base=config.relay.public_base,
        )
