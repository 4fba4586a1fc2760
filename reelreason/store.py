# ------------------------------------------------------------
# store.py - 테이블 이름 기반의 통일된 CRUD 인터페이스 (Record Store)
# ------------------------------------------------------------

from __future__ import annotations

import itertools
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .config import ACTIVITY_FEED_CAP
from .errors import NotFound
from .models import User, MovieEntry, Friendship, ActivityEvent, Challenge, PendingCode

logger = logging.getLogger(__name__)

# 경로의 첫 세그먼트 -> ORM 모델
TABLES = {
    "users": User,
    "entries": MovieEntry,
    "friendships": Friendship,
    "activity": ActivityEvent,
    "challenges": Challenge,
    "pending_codes": PendingCode,
}

_event_seq = itertools.count()


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


def _event_id(timestamp: int) -> str:
    # 같은 밀리초 안에서도 생성 순서대로 정렬되도록 시퀀스를 끼워 넣음
    return f"ev_{timestamp:013d}_{next(_event_seq) % 1_000_000:06d}_{uuid.uuid4().hex[:6]}"


class RecordStore:
    """
    요청 하나(=세션 하나) 동안 사용하는 레코드 저장소.

    - select/find/get: 동등 조건 필터. 값이 list/tuple/set 이면 IN 조건.
      any_of 로 넘긴 조건들은 OR 로 묶임.
    - upsert: 복합 키 기준 insert-or-replace.
    - 변경 메서드는 flush 까지만 하고, 커밋은 호출 측이 commit() 으로 결정.
    """

    def __init__(self, db: Session, activity_cap: int = ACTIVITY_FEED_CAP):
        self.db = db
        self.activity_cap = activity_cap

    def model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise NotFound(f"Table '{table}' does not exist") from None

    @staticmethod
    def _clause(model, column: str, value: Any):
        col = getattr(model, column)
        if isinstance(value, (list, tuple, set, frozenset)):
            return col.in_(list(value))
        return col == value

    def query(self, table: str, any_of: Optional[Dict[str, Any]] = None, **filters):
        model = self.model(table)
        q = self.db.query(model)
        for column, value in filters.items():
            q = q.filter(self._clause(model, column, value))
        if any_of:
            q = q.filter(or_(*[self._clause(model, c, v) for c, v in any_of.items()]))
        return q

    def select(self, table: str, any_of: Optional[Dict[str, Any]] = None,
               newest_first: bool = False, **filters) -> List[Any]:
        q = self.query(table, any_of=any_of, **filters)
        if newest_first:
            model = self.model(table)
            q = q.order_by(model.timestamp.desc(), model.id.desc())
        return q.all()

    def find(self, table: str, **key) -> Optional[Any]:
        return self.query(table, **key).one_or_none()

    def get(self, table: str, **key) -> Any:
        row = self.find(table, **key)
        if row is None:
            raise NotFound(f"{table} {key} not found")
        return row

    def insert(self, table: str, **values) -> Any:
        row = self.model(table)(**values)
        self.db.add(row)
        self.db.flush()
        return row

    def upsert(self, table: str, key: Dict[str, Any], values: Dict[str, Any]) -> Tuple[Any, bool]:
        """(row, created) 반환. 기존 행이 있으면 values 로 전부 덮어씀."""
        row = self.find(table, **key)
        if row is None:
            return self.insert(table, **key, **values), True
        for column, value in values.items():
            setattr(row, column, value)
        self.db.flush()
        return row, False

    def patch(self, table: str, key: Dict[str, Any], changes: Dict[str, Any]) -> Any:
        row = self.get(table, **key)
        for column, value in changes.items():
            setattr(row, column, value)
        self.db.flush()
        return row

    def delete(self, table: str, **filters) -> int:
        rows = self.query(table, **filters).all()
        for row in rows:
            self.db.delete(row)
        self.db.flush()
        return len(rows)

    def append_activity(self, user_id: str, type: str, movie_id: Optional[str] = None,
                        meta: Optional[Dict[str, Any]] = None) -> ActivityEvent:
        ts = now_ms()
        event = self.insert(
            "activity",
            id=_event_id(ts),
            user_id=user_id,
            type=type,
            movie_id=movie_id,
            meta={k: v for k, v in (meta or {}).items() if v is not None},
            timestamp=ts,
        )
        # 피드 상한 초과분(가장 오래된 것부터) 제거
        stale = (
            self.db.query(ActivityEvent.id)
            .order_by(ActivityEvent.timestamp.desc(), ActivityEvent.id.desc())
            .offset(self.activity_cap)
            .all()
        )
        if stale:
            self.delete("activity", id=[row.id for row in stale])
            logger.debug("evicted %d activity events beyond cap %d", len(stale), self.activity_cap)
        return event

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
