# -----------------------------------------------------------
# auth.py - 이메일 일회용 코드 기반 로그인/가입 엔드포인트
# -----------------------------------------------------------

import logging
import secrets
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session
from ..config import OTP_TTL_SECONDS
from ..db import get_db
from ..errors import InvalidCredential, UsernameTaken
from ..models import User
from ..schemas import OtpIn, VerifyIn, VerifyOut, SignupIn, SessionUserOut
from ..store import RecordStore, new_id, now_ms

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def issue_token() -> str:
    return secrets.token_urlsafe(24)


@router.post("/otp")
def send_code(payload: OtpIn, db: Session = Depends(get_db)):
    """4자리 코드를 발급합니다. 실제 메일 대신 로그로 전달합니다."""
    store = RecordStore(db)
    code = str(1000 + secrets.randbelow(9000))
    store.upsert("pending_codes", {"email": payload.email},
                 {"code": code, "expires": now_ms() + OTP_TTL_SECONDS * 1000})
    store.commit()
    logger.info("verification code sent to %s: %s", payload.email, code)
    return {"success": True}


@router.post("/verify", response_model=VerifyOut)
def verify_code(payload: VerifyIn, db: Session = Depends(get_db)):
    store = RecordStore(db)
    pending = store.find("pending_codes", email=payload.email)
    if not pending or pending.code != payload.code or pending.expires < now_ms():
        logger.warning("failed login attempt for %s", payload.email)
        raise InvalidCredential("Invalid or expired code.")

    store.delete("pending_codes", email=payload.email)
    store.commit()

    user = store.find("users", email=payload.email)
    if user:
        return VerifyOut(success=True, is_new_user=False, user_id=user.id, token=issue_token())
    # 신규 사용자: 프로필 단계에서 그대로 쓸 ID 를 미리 발급
    return VerifyOut(success=True, is_new_user=True, user_id=new_id("u_"))


@router.post("/signup", response_model=SessionUserOut)
def signup(payload: SignupIn, db: Session = Depends(get_db)):
    store = RecordStore(db)
    taken = store.query("users").filter(func.lower(User.username) == payload.username.lower()).first()
    if taken:
        raise UsernameTaken("This username is already taken. Please try another.")

    name = payload.name or f"{payload.first_name} {payload.last_name}".strip()
    user = store.insert(
        "users",
        id=payload.id or new_id("u_"),
        email=payload.email,
        username=payload.username,
        first_name=payload.first_name,
        last_name=payload.last_name,
        name=name,
        avatar_url=payload.avatar_url,
        favorite_genres=list(payload.favorite_genres),
        is_verified=True,
        created_at=now_ms(),
    )
    store.commit()
    db.refresh(user)
    logger.info("new user registered: %s", user.username)

    out = SessionUserOut.model_validate(user)
    out.token = issue_token()
    return out
