"""
  FastAPI 메인 애플리케이션 - 클리닉 데이터베이스 변경 알림 서비스
  - 백그라운드: 주기 폴링으로 감시 테이블의 신규 행 감지
  - 실시간 전송: WebSocket 으로 연결된 윈도우에 변경 이벤트 push
"""
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from contextlib import asynccontextmanager
import asyncio
import logging
from datetime import datetime

from .database.client import get_database_client
from .database.config import config, get_polling_config
from .polling.observers import WebSocketObserver, get_observer_registry
from .polling.scheduler import get_change_poller

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

database_client = None
observer_registry = None
change_poller = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    애플리케이션 생명주기 관리
    """
    global database_client, observer_registry, change_poller

    try:
        logger.info("애플리케이션 시작 - 리소스 초기화")
        database_client = get_database_client()
        logger.info("데이터베이스 클라이언트 초기화 완료")

        observer_registry = get_observer_registry()
        change_poller = get_change_poller()
        logger.info("변경 감지 폴링 스케줄러 초기화 완료")

        if get_polling_config()["autostart"]:
            change_poller.start()
            logger.info(f"- 폴링 스케줄러 ({change_poller.poll_interval}초 주기): ✅")
        else:
            logger.info("- 폴링 자동 시작 비활성화 (POST /sync/start 로 시작)")
    except Exception as e:
        logger.error(f"❌ 서버 초기화 실패: {e}")
        raise
    yield # yield 이전: 앱 시작 시 실행 (리소스 초기화) , yield 이후: 앱 종료 시 실행 (리소스 정리)

    try:
        if change_poller:
            await run_in_threadpool(change_poller.stop)
            logger.info("폴링 스케줄러 종료 완료")
        if database_client:
            database_client.disconnect()
            logger.info("데이터베이스 연결 종료 완료")

        logger.info("✅ FastAPI 서버 종료")
    except Exception as e:
        logger.error(f"❌ 서버 종료 중 오류: {e}")

app = FastAPI(
    title="Clinic Sync API",
    description="""
    **클리닉 데이터베이스 변경 알림 서비스**

    ## 주요 특징
    - 🔄 주기 폴링: 감시 테이블별 워터마크 이후 신규 행 감지
    - 📡 실시간 전송: `/ws/changes` 로 연결된 윈도우에 테이블별 변경 이벤트 전송
    - ⚡ 즉시 동기화: 쓰기 직후 `POST /sync` 로 다음 주기 전에 바로 확인
    """,
    version="1.0.0",
    lifespan=lifespan
)

def _require_poller():
    if not change_poller:
        raise HTTPException(status_code=503, detail="폴링 스케줄러가 초기화되지 않았습니다.")
    return change_poller

@app.get("/", tags=["시스템"])
async def root():
    """루트 엔드포인트"""
    return {
        "service": "Clinic Sync API",
        "status": "running",
        "update_source": "timestamp_polling",
        "timestamp": datetime.now().isoformat()
    }

@app.get("/health", tags=["monitoring"])
async def health_check():
    """
    헬스체크 엔드포인트
    - 데이터베이스 연결 상태
    - 폴링 스케줄러 상태
    """
    try:
        database_status = await run_in_threadpool(database_client.health_check) if database_client else {"is_connected": False}
        polling_status = change_poller.get_status() if change_poller else {"is_running": False}

        overall_healthy = (
            database_status.get("is_connected", False) and
            polling_status.get("is_running", False)
        )

        return {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "services": {
                "database": database_status,
                "change_poller": polling_status,
                "observers": len(observer_registry) if observer_registry else 0
            },
            "version": "1.0.0"
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Health check failed: {str(e)}")

@app.get("/sync/status", tags=["동기화"])
async def get_sync_status():
    """폴링 스케줄러 상태 조회"""
    poller = _require_poller()
    return {
        "change_poller": poller.get_status(),
        "timestamp": datetime.now().isoformat()
    }

@app.post("/sync", tags=["동기화"])
async def sync_now():
    """
    즉시 동기화 (다음 주기를 기다리지 않고 폴링 1회 실행)
    - 진행 중인 주기가 있으면 끝난 뒤 실행됨
    """
    poller = _require_poller()
    try:
        events = await run_in_threadpool(poller.poll_once)
        return {
            "events": [{"table": event.table, "count": len(event.rows)} for event in events],
            "timestamp": datetime.now().isoformat()
        }
    except Exception as e:
        logger.error(f"즉시 동기화 실패: {e}")
        raise HTTPException(status_code=500, detail=f"즉시 동기화 실패: {str(e)}")

@app.post("/sync/start", tags=["동기화"])
async def start_sync():
    """폴링 시작 (실행 중이면 재시작)"""
    poller = _require_poller()
    await run_in_threadpool(poller.start)
    return {"change_poller": poller.get_status(), "timestamp": datetime.now().isoformat()}

@app.post("/sync/stop", tags=["동기화"])
async def stop_sync():
    """폴링 중지 (워터마크 유지)"""
    poller = _require_poller()
    await run_in_threadpool(poller.stop)
    return {"change_poller": poller.get_status(), "timestamp": datetime.now().isoformat()}

@app.websocket("/ws/changes")
async def changes_socket(websocket: WebSocket):
    """
    변경 이벤트 구독 - 연결된 동안 관찰자로 등록
    - 연결 이후 주기의 이벤트만 수신 (지난 이벤트 재전송 없음)
    """
    registry = observer_registry or get_observer_registry()
    await websocket.accept()
    observer = WebSocketObserver(websocket, asyncio.get_running_loop())
    registry.register(observer)
    try:
        await websocket.send_json({"event": "connected", "payload": {"timestamp": datetime.now().isoformat()}})
        while True:
            # 클라이언트 메시지는 사용하지 않음 - 연결 종료 감지용
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("WebSocket 관찰자 연결 종료")
    finally:
        observer.close()
        registry.unregister(observer)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.APP_PORT)
