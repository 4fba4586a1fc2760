# ------------------------------------------------------------
# friendships.py - 친구 요청/수락/거절 상태 머신
#   NONE -> PENDING(requester) -> {ACCEPTED | 삭제}
# ------------------------------------------------------------

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from .models import Friendship, User
from .store import RecordStore

logger = logging.getLogger(__name__)


def find_pair(store: RecordStore, a: str, b: str) -> Optional[Friendship]:
    """방향과 무관하게 {a, b} 쌍의 레코드를 찾습니다."""
    rows = store.select("friendships", requester_id=[a, b], recipient_id=[a, b])
    for row in rows:
        if {row.requester_id, row.recipient_id} == {a, b}:
            return row
    return None


def request(store: RecordStore, requester_id: str, recipient_id: str) -> bool:
    # 이미 어떤 방향으로든 레코드가 있으면 아무 것도 하지 않음
    if requester_id == recipient_id or find_pair(store, requester_id, recipient_id):
        return False
    try:
        store.insert("friendships", requester_id=requester_id, recipient_id=recipient_id, status="PENDING")
        store.commit()
    except IntegrityError:
        # 반대 방향 요청이 먼저 저장된 경우
        store.rollback()
        logger.info("friend request %s -> %s lost the race, pair already exists", requester_id, recipient_id)
        return False
    logger.info("friend request %s -> %s", requester_id, recipient_id)
    return True


def accept(store: RecordStore, recipient_id: str, requester_id: str) -> bool:
    row = store.find("friendships", requester_id=requester_id, recipient_id=recipient_id, status="PENDING")
    if row is None:
        # 요청이 이미 철회/처리된 경우: 원하는 최종 상태와 같으므로 성공으로 취급
        logger.info("stale accept %s <- %s ignored", recipient_id, requester_id)
        return False
    row.status = "ACCEPTED"
    store.append_activity(recipient_id, "FRIEND_ADDED", meta={"friend_id": requester_id})
    store.commit()
    logger.info("friendship %s <-> %s accepted", requester_id, recipient_id)
    return True


def reject(store: RecordStore, recipient_id: str, requester_id: str) -> bool:
    removed = store.delete("friendships", requester_id=requester_id, recipient_id=recipient_id, status="PENDING")
    store.commit()
    return removed > 0


def incoming_pending(store: RecordStore, user_id: str) -> List[Friendship]:
    return store.select("friendships", recipient_id=user_id, status="PENDING")


def outgoing_pending(store: RecordStore, user_id: str) -> List[Friendship]:
    return store.select("friendships", requester_id=user_id, status="PENDING")


def accepted_friends(store: RecordStore, user_id: str) -> List[User]:
    rows = store.select(
        "friendships",
        any_of={"requester_id": user_id, "recipient_id": user_id},
        status="ACCEPTED",
    )
    friends = [row.counterpart_of(user_id) for row in rows]
    return [u for u in friends if u is not None]
