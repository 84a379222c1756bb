from __future__ import annotations

import asyncio
import contextlib
import enum
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable
from urllib.parse import urlencode

import httpx
import websockets

from orderdesk.core.config import settings
from orderdesk.core.session import SessionContext
from orderdesk.schemas.events import HeartbeatEvent, parse_event

logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], "Awaitable[None] | None"]
StateCallback = Callable[["ConnectionState"], None]


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class BackoffPolicy:
    base_delay_s: float = 3.0
    max_delay_s: float = 30.0
    max_attempts: int = 5

    @classmethod
    def from_settings(cls) -> BackoffPolicy:
        return cls(
            base_delay_s=settings.RECONNECT_BASE_DELAY_S,
            max_delay_s=settings.RECONNECT_MAX_DELAY_S,
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
        )

    def delay_for(self, attempt: int) -> float:
        """attempt는 1부터. min(base * attempt, cap)."""
        return min(self.base_delay_s * attempt, self.max_delay_s)


# -----------------------
# Transports
# -----------------------
class _SseConnection:
    requires_ack = False

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    async def messages(self) -> AsyncIterator[str]:
        """text/event-stream -> 이벤트별 data 문자열."""
        data_lines: list[str] = []
        async for line in self._response.aiter_lines():
            if line == "":
                if data_lines:
                    yield "\n".join(data_lines)
                    data_lines = []
                continue
            if line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if field == "data":
                data_lines.append(value[1:] if value.startswith(" ") else value)
        if data_lines:
            yield "\n".join(data_lines)

    async def send(self, message: dict[str, Any]) -> None:
        # SSE는 단방향
        return None


class SseTransport:
    """GET {API_BASE_URL}/orders/stream/{restaurantId} (EventSource)."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base = (base_url or settings.API_BASE_URL).rstrip("/")
        self._transport = transport

    @contextlib.asynccontextmanager
    async def connect(self, restaurant_id: str, token: str | None = None) -> AsyncIterator[_SseConnection]:
        url = f"{self.base}/orders/stream/{restaurant_id}"
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        # 스트림은 read timeout 없음
        timeout = httpx.Timeout(settings.REQUEST_TIMEOUT_S, read=None)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as c:
            async with c.stream("GET", url, headers=headers) as r:
                r.raise_for_status()
                yield _SseConnection(r)


class _WsConnection:
    requires_ack = True

    def __init__(self, ws: Any) -> None:
        self._ws = ws

    async def messages(self) -> AsyncIterator[str]:
        async for raw in self._ws:
            yield raw.decode("utf-8") if isinstance(raw, bytes) else raw

    async def send(self, message: dict[str, Any]) -> None:
        await self._ws.send(json.dumps(message))


class WebSocketTransport:
    """{WS_BASE_URL}?restaurantId=..&token=..&clientType=dashboard"""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client_type: str = "dashboard",
        connect: Callable[..., Any] | None = None,
    ) -> None:
        self.base = base_url or settings.WS_BASE_URL
        self.client_type = client_type
        self._connect = connect or websockets.connect

    @contextlib.asynccontextmanager
    async def connect(self, restaurant_id: str, token: str | None = None) -> AsyncIterator[_WsConnection]:
        params = urlencode({"restaurantId": restaurant_id, "token": token or "", "clientType": self.client_type})
        async with self._connect(f"{self.base}?{params}") as ws:
            yield _WsConnection(ws)


def make_transport(kind: str | None = None):
    kind = (kind or settings.LIVE_TRANSPORT).lower()
    if kind == "sse":
        return SseTransport()
    if kind in ("ws", "websocket"):
        return WebSocketTransport()
    raise ValueError(f"unknown live transport: {kind}")


# -----------------------
# Channel
# -----------------------
class LiveUpdateChannel:
    """매장 단위 실시간 주문 이벤트 채널.

    - open(): 백그라운드 task 1개로 연결/재연결 (동시에 두 번 연결하지 않음)
    - heartbeat는 구독자에게 넘기지 않고, 소켓이면 pong으로 응답
    - 연결이 끊기면 min(base * n, cap) 후 재연결, max_attempts 연속 실패 시 중단
    - close(): 대기 중인 재연결까지 취소
    """
    def __init__(
        self,
        session: SessionContext,
        on_event: EventCallback,
        *,
        transport: Any = None,
        policy: BackoffPolicy | None = None,
        on_state_change: StateCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.on_event = on_event
        self.transport = transport or make_transport()
        self.policy = policy or BackoffPolicy.from_settings()
        self.on_state_change = on_state_change
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._task: asyncio.Task | None = None
        self._conn: Any = None
        self._attempts = 0
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.info(f"[LIVE] {self.session.restaurant_id} 상태: {state.value}")
        if self.on_state_change:
            self.on_state_change(state)

    def open(self) -> LiveUpdateChannel:
        if self.running:
            return self
        self._closing = False
        self._attempts = 0
        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    async def close(self) -> None:
        self._closing = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._conn = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def wait_closed(self) -> None:
        """재연결을 포기하거나 close될 때까지 대기."""
        # asyncio.wait: 기다리는 쪽이 취소돼도 채널 task는 유지
        if self._task is not None:
            await asyncio.wait({self._task})

    async def send(self, message: dict[str, Any]) -> bool:
        conn = self._conn
        if conn is None or self._state != ConnectionState.CONNECTED or not conn.requires_ack:
            return False
        await conn.send(message)
        return True

    async def __aenter__(self) -> LiveUpdateChannel:
        return self.open()

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _run(self) -> None:
        while not self._closing:
            self._set_state(ConnectionState.CONNECTING)
            try:
                async with self.transport.connect(self.session.restaurant_id, self.session.token) as conn:
                    self._conn = conn
                    self._attempts = 0
                    self._set_state(ConnectionState.CONNECTED)
                    async for raw in conn.messages():
                        await self._dispatch(conn, raw)
                logger.warning("[LIVE] 서버가 연결을 종료함")
            except Exception as e:
                # 전송 계층 오류는 모두 재연결 대상
                logger.error(f"[LIVE] 연결 오류: {e!r}")
            finally:
                self._conn = None

            if self._closing:
                return
            self._set_state(ConnectionState.DISCONNECTED)

            if self._attempts >= self.policy.max_attempts:
                logger.error(f"[LIVE] 최대 재연결 횟수 도달 ({self.policy.max_attempts}), 재연결 중단")
                return
            self._attempts += 1
            delay = self.policy.delay_for(self._attempts)
            logger.info(f"[LIVE] {delay:g}s 후 재연결 ({self._attempts}/{self.policy.max_attempts})")
            await self._sleep(delay)

    async def _dispatch(self, conn: Any, raw: str) -> None:
        try:
            data = json.loads(raw)
            event = parse_event(data)
        except ValueError as e:
            # JSON 오류 / pydantic ValidationError
            logger.error(f"[LIVE] 메시지 파싱 실패: {e}")
            return

        if event is None:
            kind = data.get("type") if isinstance(data, dict) else type(data).__name__
            logger.info(f"[LIVE] 알 수 없는 메시지 무시: {kind}")
            return

        if isinstance(event, HeartbeatEvent):
            if conn.requires_ack:
                await conn.send({"type": "pong", "timestamp": int(time.time() * 1000)})
            return

        try:
            result = self.on_event(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"[LIVE] 이벤트 처리 실패: {event.type}")


@contextlib.asynccontextmanager
async def live_channel(
    session: SessionContext,
    on_event: EventCallback,
    **kwargs: Any,
) -> AsyncIterator[LiveUpdateChannel]:
    """async with live_channel(...) as ch: -> 블록 종료 시 반드시 close."""
    ch = LiveUpdateChannel(session, on_event, **kwargs)
    ch.open()
    try:
        yield ch
    finally:
        await ch.close()
