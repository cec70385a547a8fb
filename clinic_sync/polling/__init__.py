"""
Polling 모듈 - 테이블 변경 감지 및 관찰자 전송
"""
from .events import CHANGE_EVENT_NAME, ChangeEvent, WatchedTable, parse_watched_tables
from .observers import CallbackObserver, ObserverRegistry, WebSocketObserver, get_observer_registry
from .scheduler import ChangePoller, get_change_poller

# Public API
__all__ = [
    "CHANGE_EVENT_NAME",
    "ChangeEvent",
    "WatchedTable",
    "parse_watched_tables",
    "CallbackObserver",
    "ObserverRegistry",
    "WebSocketObserver",
    "get_observer_registry",
    "ChangePoller",
    "get_change_poller"
]
