# -----------------------------------------------------------
# entries.py - 시청 기록(업서트/조회/삭제) REST 엔드포인트
# -----------------------------------------------------------

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from ..db import get_db
from ..schemas import EntryIn, EntryOut
from ..store import RecordStore, now_ms

router = APIRouter(prefix="/api/entries", tags=["entries"])


@router.get("", response_model=List[EntryOut])
def list_entries(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """
    user_id 의 시청 기록을 반환합니다.
    - user_id 가 없으면 전체 기록 (클라이언트가 '나를 제외한 모두' 를 계산할 때 사용)
    """
    store = RecordStore(db)
    if user_id:
        return store.select("entries", user_id=user_id)
    return store.select("entries")


@router.post("", response_model=EntryOut)
def upsert_entry(payload: EntryIn, db: Session = Depends(get_db)):
    """
    (user_id, movie_id) 기준 업서트 + 활동 이벤트 1건 생성.

    - 기존 기록이 있으면 모든 필드를 이번 요청 값으로 덮어씀
    - 활동 종류는 status 를 그대로 쓰되, WATCHED 기록의 평점만 바뀐 경우 RATED
    """
    store = RecordStore(db)
    key = {"user_id": payload.user_id, "movie_id": payload.movie_id}

    # 덮어쓰기 전에 이전 상태를 복사해 둠
    previous = store.find("entries", **key)
    prev_status = previous.status if previous else None
    prev_rating = previous.rating if previous else None

    values = payload.model_dump(exclude={"user_id", "movie_id"})
    values["timestamp"] = payload.timestamp or now_ms()
    entry, _ = store.upsert("entries", key, values)

    kind = payload.status
    if payload.status == "WATCHED" and prev_status == "WATCHED" and prev_rating != payload.rating:
        kind = "RATED"
    store.append_activity(
        payload.user_id,
        kind,
        movie_id=payload.movie_id,
        meta={"rating": payload.rating, "dropped_reason": payload.dropped_reason},
    )

    store.commit()
    db.refresh(entry)
    return entry


@router.delete("")
def delete_entry(user_id: str, movie_id: str, db: Session = Depends(get_db)):
    store = RecordStore(db)
    deleted = store.delete("entries", user_id=user_id, movie_id=movie_id)
    store.commit()
    return {"success": True, "deleted": deleted}


# -----------------------------------------------------------
# 예시 호출
#    - GET    /api/entries?user_id=u_1
#    - POST   /api/entries   (JSON: {"user_id": "u_1", "movie_id": "tmdb-movie-603", "status": "WATCHED", "rating": 9})
#    - DELETE /api/entries?user_id=u_1&movie_id=tmdb-movie-603
# -----------------------------------------------------------
