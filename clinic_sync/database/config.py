"""
애플리케이션 설정 파일 - .env 파일 기반
"""
import os
from dotenv import load_dotenv
# .env 파일 로드
load_dotenv()

DEFAULT_WATCHED_TABLES = (
    "users:created_at,"
    "patients:created_at,"
    "medicines:updated_at,"
    "lab_test_records:created_at,"
    "transactions:created_at"
)

class Config:
    """애플리케이션 설정 클래스"""
    # === 데이터베이스 설정 ===
    # DATABASE_URL 이 있으면 SQLAlchemy 엔진 사용 (mysql+pymysql://, sqlite:// 등)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
    DB_NAME: str = os.getenv("DB_NAME", "hospital_management")
    DB_USER: str = os.getenv("DB_USER")  # 필수 환경변수 (DATABASE_URL 미사용 시)
    DB_PASSWORD: str = os.getenv("DB_PASSWORD")  # 필수 환경변수 (DATABASE_URL 미사용 시)
    DB_POOL_MIN: int = int(os.getenv("DB_POOL_MIN", "1"))
    DB_POOL_MAX: int = int(os.getenv("DB_POOL_MAX", "10"))

    # === 폴링 설정 ===
    POLLING_INTERVAL: float = float(os.getenv("POLLING_INTERVAL_SECONDS", "5"))
    POLLING_MAX_ROWS: int = int(os.getenv("POLLING_MAX_ROWS", "100"))
    WATCHED_TABLES: str = os.getenv("WATCHED_TABLES", DEFAULT_WATCHED_TABLES)
    POLLING_AUTOSTART: bool = os.getenv("POLLING_AUTOSTART", "true").lower() == "true"

    # === 애플리케이션 설정 ===
    APP_ENV: str = os.getenv("APP_ENV", "development")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # === 로깅 설정 ===
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# 전역 설정 인스턴스
config = Config()

# 필수 환경변수 검증
def validate_required_env_vars():
    """필수 환경변수들이 설정되어 있는지 검증"""
    # DATABASE_URL 사용 시 접속 정보가 URL에 포함됨
    if config.DATABASE_URL:
        return
    required_vars = ["DB_USER", "DB_PASSWORD"]

    missing_vars = []
    for var in required_vars:
        if not getattr(config, var):
            missing_vars.append(var)

    if missing_vars:
        raise ValueError(f"필수 환경변수가 설정되지 않았습니다: {', '.join(missing_vars)}")

# 편의 함수들
def get_database_config() -> dict:
    """데이터베이스 연결 설정 반환"""
    if config.DATABASE_URL:
        return {"url": config.DATABASE_URL}

    validate_required_env_vars()
    return {
        "host": config.DB_HOST,
        "port": config.DB_PORT,
        "database": config.DB_NAME,
        "user": config.DB_USER,
        "password": config.DB_PASSWORD,
        "minconn": config.DB_POOL_MIN,
        "maxconn": config.DB_POOL_MAX
    }

def get_polling_config() -> dict:
    """폴링 스케줄러 설정 반환 (tables 는 '테이블:컬럼' 원본 문자열)"""
    return {
        "interval": config.POLLING_INTERVAL,
        "max_rows": config.POLLING_MAX_ROWS,
        "tables": config.WATCHED_TABLES,
        "autostart": config.POLLING_AUTOSTART
    }
