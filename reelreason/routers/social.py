# -----------------------------------------------------------
# social.py - 친구 요청/수락/거절 및 친구 목록 엔드포인트
# -----------------------------------------------------------

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from .. import friendships
from ..db import get_db
from ..schemas import UserOut, FriendRequestIn, FriendResponseIn, FriendRequestOut
from ..store import RecordStore

router = APIRouter(prefix="/api/social", tags=["social"])


@router.post("/request")
def send_request(payload: FriendRequestIn, db: Session = Depends(get_db)):
    # 같은 쌍에 레코드가 이미 있으면 멱등하게 성공
    created = friendships.request(RecordStore(db), payload.user_id, payload.friend_id)
    return {"success": True, "created": created}


@router.post("/accept")
def accept_request(payload: FriendResponseIn, db: Session = Depends(get_db)):
    changed = friendships.accept(RecordStore(db), payload.user_id, payload.sender_id)
    return {"success": True, "changed": changed}


@router.post("/reject")
def reject_request(payload: FriendResponseIn, db: Session = Depends(get_db)):
    changed = friendships.reject(RecordStore(db), payload.user_id, payload.sender_id)
    return {"success": True, "changed": changed}


@router.get("/friends", response_model=List[UserOut])
def list_friends(user_id: str, db: Session = Depends(get_db)):
    return friendships.accepted_friends(RecordStore(db), user_id)


@router.get("/requests/pending", response_model=List[FriendRequestOut])
def list_pending(user_id: str, db: Session = Depends(get_db)):
    """나에게 온 요청. 요청자 User 를 함께 담아 반환 (삭제된 사용자는 제외)."""
    rows = friendships.incoming_pending(RecordStore(db), user_id)
    return [
        FriendRequestOut(id=f.requester_id, user=UserOut.model_validate(f.requester))
        for f in rows
        if f.requester is not None
    ]


@router.get("/requests/outgoing", response_model=List[FriendRequestOut])
def list_outgoing(user_id: str, db: Session = Depends(get_db)):
    rows = friendships.outgoing_pending(RecordStore(db), user_id)
    return [
        FriendRequestOut(id=f.recipient_id, user=UserOut.model_validate(f.recipient))
        for f in rows
        if f.recipient is not None
    ]
