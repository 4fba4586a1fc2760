# -----------------------------------------------------------
# users.py - 사용자 프로필 조회/수정 REST 엔드포인트
# -----------------------------------------------------------

from fastapi import APIRouter, Depends, HTTPException  # APIRouter: 라우팅 모듈화 / Depends: 의존성 주입 / HTTPException: 에러 응답
from sqlalchemy.orm import Session                     # SQLAlchemy ORM 세션 타입 힌트
from typing import List, Optional
from ..db import get_db                                # DB 세션 의존성 (요청마다 세션 열고 응답 후 닫음)
from ..schemas import UserOut, UserUpdate              # Pydantic 스키마: 응답·요청 페이로드 구조
from ..store import RecordStore

# 이 모듈의 엔드포인트는 "/api/users"로 시작
router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=List[UserOut])
def list_users(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """
    사용자 목록을 반환합니다.
    - user_id 쿼리 파라미터가 있으면 해당 사용자만 (0건 또는 1건) 담아 반환합니다.
    """
    store = RecordStore(db)
    if user_id:
        return store.select("users", id=user_id)
    return store.select("users")


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Session = Depends(get_db)):
    user = RecordStore(db).find("users", id=user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put("/{user_id}", response_model=UserOut)
def update_user(user_id: str, payload: UserUpdate, db: Session = Depends(get_db)):
    """
    프로필 부분 수정.
    - 요청 바디에 실제로 담긴 필드만 반영합니다 (exclude_unset).
    """
    store = RecordStore(db)
    if not store.find("users", id=user_id):
        raise HTTPException(status_code=404, detail="User not found")

    user = store.patch("users", {"id": user_id}, payload.model_dump(exclude_unset=True))
    store.commit()
    db.refresh(user)
    return user


# -----------------------------------------------------------
# 예시 호출
#    - GET  /api/users
#    - GET  /api/users?user_id=u_1
#    - PUT  /api/users/u_1   (JSON: {"favorite_genres": ["Drama"]})
# -----------------------------------------------------------
