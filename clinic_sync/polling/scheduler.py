"""
    변경 감지 폴링 스케줄러
    - 감시 테이블마다 마지막으로 본 변경 시각(워터마크)을 기억하고
      주기적으로 그 이후 생성/수정된 행을 조회해 관찰자에게 전송
"""
import threading
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional
from ..database.client import DatabaseClient, get_database_client
from ..database.config import get_polling_config
from .events import CHANGE_EVENT_NAME, ChangeEvent, WatchedTable, parse_watched_tables
from .observers import ObserverRegistry, get_observer_registry

logger = logging.getLogger(__name__)

class ChangePoller:
    def __init__(self,
                 client_factory: Callable[[], DatabaseClient] = get_database_client,
                 registry: Optional[ObserverRegistry] = None,
                 tables: Iterable[WatchedTable] = (),
                 interval: float = 5,
                 max_rows: int = 100):
        """폴링 스케줄러 초기화"""
        self.client_factory = client_factory
        self.registry = registry if registry is not None else get_observer_registry()
        self.tables = list(tables)
        self.poll_interval = interval
        self.max_rows = max_rows
        self.is_running = False
        self.last_check = None
        self.last_error = None
        self.cycles = 0
        self.polling_thread = None
        self._stop_event = threading.Event()
        # 폴링 주기는 동시에 하나만 실행 (워터마크 경쟁 방지)
        self._cycle_lock = threading.Lock()
        # 테이블명 -> 마지막으로 본 변경 컬럼 값 (프로세스 재시작 시 초기화)
        self._watermarks: Dict[str, object] = {}
        logger.info("변경 감지 폴링 스케줄러 초기화 완료")

    def start(self, tables: Optional[Iterable[WatchedTable]] = None, interval: Optional[float] = None) -> None:
        """주기 폴링 시작 (이미 실행중이면 기존 폴링을 멈추고 다시 시작)"""
        if self.is_running:
            logger.warning("폴링 스케줄러가 이미 실행중입니다 - 재시작합니다.")
            self.stop()
        if tables is not None:
            self.tables = list(tables)
        if interval is not None:
            self.poll_interval = interval

        self.is_running = True
        # 실행마다 새 이벤트 사용: 이전 스레드가 아직 주기를 마무리하는 중이어도 다시 돌지 않음
        self._stop_event = threading.Event()
        self.polling_thread = threading.Thread(
            target=self._polling_loop,
            args=(self._stop_event,),
            name="change-poller",
            daemon=True
        )
        self.polling_thread.start()
        logger.info(f"폴링 스케줄러 시작 완료 ({self.poll_interval}초 주기, 테이블 {len(self.tables)}개)")

    def stop(self) -> None:
        """폴링 중지 (진행 중인 주기는 중단하지 않음, 워터마크 유지)"""
        if not self.is_running:
            return
        self.is_running = False
        self._stop_event.set()

        thread = self.polling_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=5)
        logger.info("폴링 스케줄러 중지 완료")

    def poll_once(self) -> List[ChangeEvent]:
        """
        폴링 1회 동기 실행 (스케줄 및 즉시 동기화 요청에서 공용)
        - 다른 주기가 실행 중이면 끝날 때까지 기다린 뒤 실행
        """
        with self._cycle_lock:
            return self._run_cycle()

    def get_watermark(self, table: str):
        return self._watermarks.get(table)

    def get_status(self) -> dict:
        """폴링 상태 조회"""
        return {
            "is_running": self.is_running,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "poll_interval": self.poll_interval,
            "max_rows": self.max_rows,
            "tables": [
                {"name": table.name, "change_column": table.change_column}
                for table in self.tables
            ],
            "watermarks": {
                name: value.isoformat() if hasattr(value, "isoformat") else value
                for name, value in self._watermarks.items()
            },
            "last_error": self.last_error,
            "cycles": self.cycles
        }

    def _polling_loop(self, stop_event: threading.Event) -> None:
        """폴링 작업 수행"""
        while not stop_event.is_set():
            try:
                self._scheduled_tick()
            except Exception as e:
                # 저장소 오류 등으로 스케줄러가 멈추지 않도록 기록만 하고 다음 주기 진행
                logger.error(f"폴링 루프 오류: {e}")
            stop_event.wait(self.poll_interval)

    def _scheduled_tick(self) -> None:
        # 즉시 동기화 등으로 주기가 진행 중이면 이번 틱은 건너뜀
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("이전 폴링 주기가 진행 중 - 이번 주기 건너뛰기")
            return
        try:
            self._run_cycle()
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> List[ChangeEvent]:
        self.last_check = datetime.now()
        logger.debug(f"폴링 시작: {self.last_check}")

        try:
            client = self.client_factory()
        except Exception as e:
            logger.error(f"데이터베이스 연결 실패 - 워터마크 유지, 다음 주기에 재시도: {e}")
            self.last_error = str(e)
            return []

        events = []
        failed = False
        for table in self.tables:
            try:
                event = self._check_table(client, table)
            except Exception as e:
                logger.error(f"테이블 변경분 확인 실패 - {table.name}: {e}")
                self.last_error = f"{table.name}: {e}"
                failed = True
                continue
            if event is not None:
                events.append(event)

        if not failed:
            self.last_error = None
        self._broadcast(events)
        self.cycles += 1
        return events

    def _check_table(self, client: DatabaseClient, table: WatchedTable) -> Optional[ChangeEvent]:
        """테이블 한 개의 변경분 확인 (첫 확인은 기준점만 설정)"""
        watermark = self._watermarks.get(table.name)

        if watermark is None:
            # 기존 행을 신규로 보고하지 않도록 현재 최대값을 기준점으로 설정
            rows = client.execute_query(
                f"SELECT MAX({table.change_column}) AS max_value FROM {table.name}"
            )
            max_value = rows[0].get("max_value") if rows else None
            self._watermarks[table.name] = max_value if max_value is not None else datetime.now()
            logger.info(f"{table.name} 기준 워터마크 설정: {self._watermarks[table.name]}")
            return None

        rows = client.execute_query(
            f"SELECT * FROM {table.name} "
            f"WHERE {table.change_column} > %s "
            f"ORDER BY {table.change_column} DESC "
            f"LIMIT {int(self.max_rows)}",
            (watermark,)
        )
        if not rows:
            return None

        # 내림차순이므로 첫 행이 최대값
        self._watermarks[table.name] = rows[0][table.change_column]
        logger.info(f"{table.name} 변경분 감지: {len(rows)}건 (워터마크 → {self._watermarks[table.name]})")
        return ChangeEvent(table=table.name, rows=tuple(rows))

    def _broadcast(self, events: List[ChangeEvent]) -> None:
        """테이블별 이벤트를 현재 관찰자 전체에게 전송"""
        for event in events:
            payload = event.to_payload()
            observers = self.registry.all_observers()
            for observer in observers:
                try:
                    observer.send(CHANGE_EVENT_NAME, payload)
                except Exception as e:
                    # 닫힌 윈도우 등 - 전송 실패는 무시
                    logger.debug(f"관찰자 전송 실패 (무시): {e}")
            logger.debug(f"{event.table} 이벤트 전송 완료 - 관찰자 {len(observers)}개")

_change_poller_instance = None

def get_change_poller() -> ChangePoller:
    """폴링 스케줄러 싱글톤 반환"""
    global _change_poller_instance
    if _change_poller_instance is None:
        polling_config = get_polling_config()
        _change_poller_instance = ChangePoller(
            tables=parse_watched_tables(polling_config["tables"]),
            interval=polling_config["interval"],
            max_rows=polling_config["max_rows"]
        )
    return _change_poller_instance
