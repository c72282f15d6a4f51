# -*- coding: utf-8 -*-
"""
릴레이 서버 HTTP 프로브.

httpx를 사용하여 릴레이 서버가 스트림의 재생 목록(index.m3u8)을
제공하는지 확인합니다.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from relay_keeper.common.logging import get_logger


@dataclass(frozen=True)
class RelayEndpoints:
    """
    릴레이 URL 규칙.

    push_base/public_base는 외부 설정이며, URL은 스트림 이름만의 순수 함수입니다.
    """

    push_base: str
    public_base: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "push_base", self.push_base.rstrip("/"))
        object.__setattr__(self, "public_base", self.public_base.rstrip("/"))

    def push_url(self, stream_name: str) -> str:
        """인코더가 스트림을 밀어넣는 URI."""
        return f"{self.push_base}/{stream_name}"

    def public_url(self, stream_name: str) -> str:
        """시청자에게 공개되는 재생 URL."""
        return f"{self.public_base}/{stream_name}"

    def playlist_url(self, stream_name: str) -> str:
        """준비 여부 확인용 재생 목록 URL."""
        return f"{self.public_url(stream_name)}/index.m3u8"


class RelayProbe:
    """
    릴레이 준비 상태 프로브.

    200 응답만 준비 완료로 보고, 404 등 다른 상태나 연결 오류는
    아직 준비되지 않은 것으로 취급합니다 (예외를 던지지 않음).
    """

    def __init__(
        self,
        endpoints: RelayEndpoints,
        request_timeout: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        RelayProbe 초기화.

        Args:
            endpoints: 릴레이 URL 규칙
            request_timeout: 요청 하나의 타임아웃 (초)
            client: 외부에서 주입할 AsyncClient (테스트용, None이면 생성)
        """
        self._endpoints = endpoints
        self._request_timeout = request_timeout
        self._client = client
        self._owns_client = client is None

        self._probe_count = 0
        self._ready_count = 0

        self._logger = get_logger(__name__)

    @property
    def endpoints(self) -> RelayEndpoints:
        return self._endpoints

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._request_timeout,
                follow_redirects=True,
            )
        return self._client

    async def is_stream_ready(self, stream_name: str) -> bool:
        """
        스트림 재생 목록이 200으로 응답하는지 한 번 확인합니다.

        Args:
            stream_name: 스트림 이름

        Returns:
            준비 여부
        """
        url = self._endpoints.playlist_url(stream_name)
        self._probe_count += 1

        try:
            response = await self._get_client().get(url)
        except httpx.HTTPError as e:
            self._logger.debug("릴레이 프로브 실패", stream_id=stream_name, url=url, error=str(e))
            return False

        ready = response.status_code == 200
        if ready:
            self._ready_count += 1
        else:
            self._logger.debug(
                "릴레이 스트림 미준비",
                stream_id=stream_name,
                status_code=response.status_code,
            )
        return ready

    async def wait_until_ready(
        self,
        stream_name: str,
        timeout: float,
        interval: float = 1.0,
    ) -> bool:
        """
        스트림이 준비될 때까지 주기적으로 확인합니다.

        Args:
            stream_name: 스트림 이름
            timeout: 최대 대기 시간 (초)
            interval: 확인 간격 (초)

        Returns:
            제한 시간 안에 준비되었는지 여부 (시간 초과 시 False, 예외 없음)
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(timeout),
                wait=wait_fixed(interval),
                retry=retry_if_result(lambda ready: ready is False),
            ):
                with attempt:
                    ready = await self.is_stream_ready(stream_name)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(ready)
        except RetryError:
            return False
        return True

    async def aclose(self) -> None:
        """소유한 HTTP 클라이언트를 닫습니다."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def get_stats(self) -> dict:
        """통계 정보 반환."""
        return {
            "public_base": self._endpoints.public_base,
            "probe_count": self._probe_count,
            "ready_count": self._ready_count,
        }
