"""
관찰자 레지스트리 - 변경 이벤트를 받을 열린 윈도우/연결 목록
"""
import asyncio
import logging
import threading
from typing import Any, Callable, List, Protocol

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class Observer(Protocol):
    def send(self, event_name: str, payload: Any) -> None:
        ...


class CallbackObserver:
    """프로세스 내부 관찰자 (콜백 함수 래핑)"""

    def __init__(self, callback: Callable[[str, Any], None]):
        self.callback = callback

    def send(self, event_name: str, payload: Any) -> None:
        self.callback(event_name, payload)


class WebSocketObserver:
    """
    WebSocket 연결 관찰자
    - 폴링 스레드에서 호출되므로 앱 이벤트 루프에 전송을 예약하고 바로 반환 (fire-and-forget)
    - 연결이 끊긴 뒤의 전송은 무시
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop
        self.closed = False

    def send(self, event_name: str, payload: Any) -> None:
        if self.closed or self.loop.is_closed():
            return
        message = {"event": event_name, "payload": jsonable_encoder(payload)}
        try:
            future = asyncio.run_coroutine_threadsafe(self.websocket.send_json(message), self.loop)
        except RuntimeError as e:
            # 이벤트 루프 종료됨
            logger.debug(f"WebSocket 전송 예약 실패 (무시): {e}")
            self.closed = True
            return
        future.add_done_callback(self._on_sent)

    def _on_sent(self, future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.debug(f"WebSocket 전송 실패 (연결 종료로 간주): {error}")
            self.closed = True

    def close(self) -> None:
        self.closed = True


class ObserverRegistry:
    """현재 살아있는 관찰자 집합 (스레드 안전)"""

    def __init__(self):
        self._observers = []
        self._lock = threading.Lock()

    def register(self, observer: Observer) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)
        logger.info(f"관찰자 등록: 현재 {len(self)}개")

    def unregister(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)
        logger.info(f"관찰자 해제: 현재 {len(self)}개")

    def all_observers(self) -> List[Observer]:
        """브로드캐스트 시점의 관찰자 스냅샷 반환 (매번 새로 조회)"""
        with self._lock:
            return list(self._observers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)

_observer_registry_instance = None

def get_observer_registry() -> ObserverRegistry:
    """관찰자 레지스트리 싱글톤 반환"""
    global _observer_registry_instance
    if _observer_registry_instance is None:
        _observer_registry_instance = ObserverRegistry()
    return _observer_registry_instance
