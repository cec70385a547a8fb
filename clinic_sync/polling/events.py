"""
폴링 이벤트 모델 - 감시 테이블 정의 및 변경 이벤트
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Tuple

# 관찰자(윈도우/소켓)에게 전송되는 이벤트 이름
CHANGE_EVENT_NAME = "database-change"

# SQL에 직접 삽입되므로 식별자 형식만 허용
# PostgreSQL 은 따옴표 없는 식별자를 소문자로 바꾸므로 소문자만 허용 (결과 행 키와 일치해야 함)
_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

Row = Dict[str, Any]


@dataclass(frozen=True)
class WatchedTable:
    """감시 대상 테이블 (테이블명 + 변경 시각 컬럼)"""
    name: str
    change_column: str

    def __post_init__(self):
        for identifier in (self.name, self.change_column):
            if not _IDENTIFIER.match(identifier or ""):
                raise ValueError(f"허용되지 않는 SQL 식별자: {identifier!r}")


@dataclass(frozen=True)
class ChangeEvent:
    """한 폴링 주기에서 한 테이블에 대해 감지된 신규 행 묶음"""
    table: str
    rows: Tuple[Row, ...]
    observed_at: datetime = field(default_factory=datetime.now)

    def to_payload(self) -> dict:
        # 반환: {"table": str, "data": [row, ...], "timestamp": ISO-8601}
        return {
            "table": self.table,
            "data": list(self.rows),
            "timestamp": self.observed_at.isoformat()
        }


def parse_watched_tables(raw: str) -> List[WatchedTable]:
    """'테이블:컬럼' 쉼표 구분 문자열을 WatchedTable 목록으로 변환"""
    tables = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, column = entry.partition(":")
        if not sep or not name.strip() or not column.strip():
            raise ValueError(f"감시 테이블 설정 형식 오류 (테이블:컬럼): {entry!r}")
        tables.append(WatchedTable(name=name.strip(), change_column=column.strip()))
    return tables
