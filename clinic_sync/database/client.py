import psycopg2
import psycopg2.extras # RealDictCursor : 결과가 딕셔너리 {'id': 1, 'name': 'John'}로 나옴 -> 컬럼명으로 접근 가능
from psycopg2.pool import SimpleConnectionPool  # 연결 풀
import logging
from typing import Optional, List
from datetime import datetime
from .config import get_database_config

from sqlalchemy import create_engine, text

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """데이터베이스 연결/풀 관련 오류"""


class DatabaseClient:
    def __init__(self, url: Optional[str] = None, host: str = "localhost", port: int = 5432,
                 user: Optional[str] = None, password: Optional[str] = None,
                 database: Optional[str] = None, minconn: int = 1, maxconn: int = 10):
        """데이터베이스 클라이언트 초기화 (URL 지정 시 SQLAlchemy 엔진, 아니면 psycopg2 연결 풀)"""
        self.engine = None
        self.connection_pool = None
        self.use_engine = bool(url)

        if self.use_engine:
            self._init_engine(url)
        else:
            self.connection_params = {
                "host": host,
                "port": port,
                "user": user,
                "password": password,
                "database": database
            }
            self.minconn = minconn
            self.maxconn = maxconn
            self._initialize_connection_pool()

    def _init_engine(self, url: str) -> None:
        """SQLAlchemy 엔진 초기화 (mysql+pymysql, sqlite 등)"""
        try:
            self.engine = create_engine(url, pool_pre_ping=True)
            self.connection_params = {"url": self.engine.url.render_as_string(hide_password=True)}
            logger.info(f"SQLAlchemy 엔진 초기화 완료: {self.engine.url.drivername}")
        except Exception as e:
            logger.error(f"SQLAlchemy 엔진 초기화 실패 : {e}")
            raise

    def _initialize_connection_pool(self) -> None:
        """PostgreSQL 연결 풀 초기화"""
        try:
            self.connection_pool = SimpleConnectionPool(
                minconn=self.minconn,
                maxconn=self.maxconn,
                **self.connection_params
            )
            logger.info("PostgreSQL 연결 풀 초기화 완료")
        except Exception as e:
            # 연결 실패해도 프로세스는 유지 - 다음 연결 요청 시 재시도
            logger.error(f"PostgreSQL 연결 풀 초기화 실패: {e}")
            self.connection_pool = None

    def _get_connection(self):
        """연결 가져오기 (엔진 또는 연결 풀)"""
        if self.use_engine:
            return self.engine.connect()
        if not self.connection_pool:
            # 시작 시 DB가 내려가 있었던 경우 등 - 풀 재생성 시도
            self._initialize_connection_pool()
        if not self.connection_pool:
            raise DatabaseError("PostgreSQL 연결 풀이 초기화되지 않음")
        return self.connection_pool.getconn()

    def _return_connection(self, conn) -> None:
        """연결 반환 (엔진 또는 연결 풀)"""
        if self.use_engine:
            conn.close()
        elif self.connection_pool and conn:
            self.connection_pool.putconn(conn)

    def _masked_connection_info(self) -> dict:
        info = dict(self.connection_params)
        if info.get("password"):
            info["password"] = "***"
        return info

    def health_check(self) -> dict:
        """데이터베이스 연결 상태 확인"""
        try:
            rows = self.execute_query("SELECT 1 AS ok")
            is_connected = bool(rows) and rows[0].get("ok") == 1
            return {
                "is_connected": is_connected,
                "connection_info": self._masked_connection_info(),
                "checked_at": datetime.now().isoformat()
            }
        except Exception as e:
            logger.error(f"데이터베이스 헬스체크 실패: {e}")
            return {
                "is_connected": False,
                "connection_info": self._masked_connection_info(),
                "error": str(e),
                "checked_at": datetime.now().isoformat()
            }

    def disconnect(self) -> None:
        """데이터베이스 연결 종료"""
        try:
            if self.use_engine:
                if self.engine is not None:
                    self.engine.dispose()
                    self.engine = None
                logger.info("SQLAlchemy 엔진 종료 완료")
            else:
                if self.connection_pool:
                    self.connection_pool.closeall()
                    self.connection_pool = None
                logger.info("PostgreSQL 연결 종료 완료")
        except Exception as e:
            logger.error(f"데이터베이스 연결 종료 실패: {e}")

    def execute_query(self, query: str, params: tuple = None) -> List[dict]:
        """SQL 쿼리 실행하고 결과 반환 (%s 스타일 파라미터)"""
        conn = None
        cursor = None
        is_select = query.strip().upper().startswith('SELECT')
        try:
            conn = self._get_connection()

            if self.use_engine:
                if params:
                    # %s 스타일 파라미터를 :param0, :param1 ... 로 변환
                    param_names = [f"param{i}" for i in range(len(params))]
                    param_dict = {name: value for name, value in zip(param_names, params)}
                    converted_query = query
                    for param_name in param_names:
                        converted_query = converted_query.replace('%s', f':{param_name}', 1)
                    result = conn.execute(text(converted_query), param_dict)
                else:
                    result = conn.execute(text(query))
                if is_select:
                    return [dict(row._mapping) for row in result]
                # INSERT, UPDATE, DELETE 등의 경우
                conn.commit()
                return []
            else:
                cursor = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                if params:
                    cursor.execute(query, params)
                else:
                    cursor.execute(query)
                if is_select:
                    return [dict(row) for row in cursor.fetchall()]
                conn.commit()
                return []
        except Exception as e:
            if conn is not None and not self.use_engine:
                try:
                    conn.rollback()
                except psycopg2.Error as rollback_error:
                    logger.warning(f"롤백 실패: {rollback_error}")
            logger.error(f"쿼리 실행 실패: {e}")
            raise
        finally:
            if cursor is not None:
                cursor.close()
            if conn is not None:
                self._return_connection(conn)

_database_client_instance = None
def get_database_client() -> DatabaseClient:
    """데이터베이스 클라이언트 싱글톤 반환"""
    global _database_client_instance
    if _database_client_instance is None:
        _database_client_instance = DatabaseClient(**get_database_config())
    return _database_client_instance

def reset_database_client() -> None:
    """싱글톤 연결 종료 및 초기화"""
    global _database_client_instance
    if _database_client_instance is not None:
        _database_client_instance.disconnect()
        _database_client_instance = None
