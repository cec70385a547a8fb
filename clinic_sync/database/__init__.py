"""
Database 모듈 - 데이터베이스 클라이언트 및 설정 관리
"""
from .client import get_database_client, reset_database_client, DatabaseClient, DatabaseError
from .config import (
    config,
    get_database_config,
    get_polling_config
)

# Public API
__all__ = [
    # Client
    "get_database_client",
    "reset_database_client",
    "DatabaseClient",
    "DatabaseError",

    # Config
    "config",
    "get_database_config",
    "get_polling_config"
]
