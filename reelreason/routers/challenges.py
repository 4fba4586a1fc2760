# -----------------------------------------------------------
# challenges.py - 턴제 대결 생성/조회/갱신/삭제 엔드포인트
# -----------------------------------------------------------

import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from ..db import get_db
from ..schemas import ChallengeIn, ChallengeOut, ChallengeUpdate
from ..store import RecordStore, new_id, now_ms

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/challenges", tags=["challenges"])

# 상태는 PENDING -> ACTIVE -> COMPLETED 로만 진행
STATUS_RANK = {"PENDING": 0, "ACTIVE": 1, "COMPLETED": 2}


@router.post("", response_model=ChallengeOut)
def create_challenge(payload: ChallengeIn, db: Session = Depends(get_db)):
    participants = {payload.creator_id, payload.recipient_id}
    turn_user_id = payload.turn_user_id or payload.creator_id
    if turn_user_id not in participants:
        raise HTTPException(status_code=400, detail="turn_user_id must be a participant")
    if payload.results is not None and payload.results.kind != payload.type:
        raise HTTPException(status_code=400, detail="results kind does not match challenge type")

    store = RecordStore(db)
    challenge = store.insert(
        "challenges",
        id=new_id("ch_"),
        creator_id=payload.creator_id,
        recipient_id=payload.recipient_id,
        turn_user_id=turn_user_id,
        type=payload.type,
        size=payload.size,
        status=payload.status,
        movie_ids=list(payload.movie_ids),
        results=payload.results.model_dump() if payload.results is not None else None,
        timestamp=now_ms(),
    )
    store.commit()
    db.refresh(challenge)
    logger.info("multiplayer %s %s started (%s vs %s)",
                challenge.type, challenge.id, challenge.creator_id, challenge.recipient_id)
    return challenge


@router.get("", response_model=List[ChallengeOut])
def list_challenges(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """user_id 가 생성자 또는 수신자인 대결 (최신순)."""
    store = RecordStore(db)
    if user_id:
        return store.select(
            "challenges",
            any_of={"creator_id": user_id, "recipient_id": user_id},
            newest_first=True,
        )
    return store.select("challenges", newest_first=True)


@router.get("/{challenge_id}", response_model=ChallengeOut)
def get_challenge(challenge_id: str, db: Session = Depends(get_db)):
    challenge = RecordStore(db).find("challenges", id=challenge_id)
    if not challenge:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return challenge


@router.put("/{challenge_id}", response_model=ChallengeOut)
def update_challenge(challenge_id: str, payload: ChallengeUpdate, db: Session = Depends(get_db)):
    """
    대결 부분 갱신 (last-write-wins).

    - 이미 COMPLETED 인 대결은 변경하지 않고 저장된 값을 그대로 반환 (멱등)
    - 상태 역행(예: COMPLETED -> ACTIVE)은 무시
    - COMPLETED 로 전이되는 순간에만 CHALLENGE_COMPLETED 활동을 1건 생성
    """
    store = RecordStore(db)
    challenge = store.find("challenges", id=challenge_id)
    if not challenge:
        raise HTTPException(status_code=404, detail="Challenge not found")
    if challenge.status == "COMPLETED":
        return challenge

    changes = payload.model_dump(exclude_unset=True)
    if "status" in changes and (
        changes["status"] is None or STATUS_RANK[changes["status"]] < STATUS_RANK[challenge.status]
    ):
        changes.pop("status")
    if "turn_user_id" in changes and changes["turn_user_id"] not in (challenge.creator_id, challenge.recipient_id):
        raise HTTPException(status_code=400, detail="turn_user_id must be a participant")
    if "results" in changes:
        if payload.results is not None and payload.results.kind != challenge.type:
            raise HTTPException(status_code=400, detail="results kind does not match challenge type")
        # 기본값 필드(kind 등)까지 빠짐없이 저장
        changes["results"] = payload.results.model_dump() if payload.results is not None else None

    completing = changes.get("status") == "COMPLETED"
    store.patch("challenges", {"id": challenge_id}, changes)
    if completing:
        store.append_activity(
            challenge.recipient_id,
            "CHALLENGE_COMPLETED",
            meta={"challenge_type": challenge.type, "challenge_id": challenge_id},
        )
        logger.info("challenge %s finalized", challenge_id)

    store.commit()
    db.refresh(challenge)
    return challenge


@router.delete("")
def delete_challenge(challenge_id: str = Query(..., alias="id"), db: Session = Depends(get_db)):
    # 참가자 누구든, 상태와 무관하게 하드 삭제
    store = RecordStore(db)
    deleted = store.delete("challenges", id=challenge_id)
    store.commit()
    if deleted:
        logger.info("challenge %s terminated", challenge_id)
    return {"success": True, "deleted": deleted}
