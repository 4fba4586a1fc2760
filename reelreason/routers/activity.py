# -----------------------------------------------------------
# activity.py - 활동 피드 조회 엔드포인트
# -----------------------------------------------------------

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from .. import friendships
from ..db import get_db
from ..schemas import ActivityOut
from ..store import RecordStore

router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("", response_model=List[ActivityOut])
def activity_feed(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """
    최신순 활동 피드.
    - user_id 가 있으면 본인 + 수락된 친구들의 이벤트만
    - 없으면 전체 피드
    """
    store = RecordStore(db)
    if user_id:
        actors = {user_id} | {u.id for u in friendships.accepted_friends(store, user_id)}
        events = store.select("activity", newest_first=True, user_id=actors)
    else:
        events = store.select("activity", newest_first=True)

    # ORM 속성명(meta) 과 응답 필드명(metadata) 이 달라 직접 매핑
    return [
        ActivityOut(
            id=e.id,
            user_id=e.user_id,
            type=e.type,
            movie_id=e.movie_id,
            metadata=e.meta or {},
            timestamp=e.timestamp,
        )
        for e in events
    ]
