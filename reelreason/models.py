# ------------------------------------------------------------
# models.py - SQLAlchemy ORM 모델 정의
#   (users/entries/friendships/activity/challenges/pending_codes)
# ------------------------------------------------------------

from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, Text, JSON, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .db import Base  # Declarative Base: 모든 ORM 모델의 베이스 클래스


# ------------------------------
# User: 사용자 테이블
# ------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True)
    first_name = Column(String(100), default="")
    last_name = Column(String(100), default="")
    name = Column(String(200), default="")            # 표시 이름
    username = Column(String(50), unique=True, index=True)
    avatar_url = Column(String(500))
    favorite_genres = Column(JSON, default=list)      # 장르 문자열 리스트
    favorite_movie_id = Column(String(64))
    is_verified = Column(Boolean, default=False)
    created_at = Column(BigInteger, nullable=False)   # epoch milliseconds


# ------------------------------
# MovieEntry: 사용자별 시청 기록 (교차 테이블)
# ------------------------------
class MovieEntry(Base):
    __tablename__ = "entries"

    # 복합 기본 키(PK): (user_id, movie_id)
    # - 동일 사용자가 동일 영화에 대해 하나의 기록만 가짐 (쓰기는 업서트)
    user_id = Column(String(64), ForeignKey("users.id"), primary_key=True)
    movie_id = Column(String(64), primary_key=True)   # 외부 메타데이터 제공자의 영화 ID

    status = Column(String(20), nullable=False)       # WATCHED / WATCH_LATER / DROPPED
    rating = Column(Integer)                          # 1~10, WATCHED 일 때만 의미 있음
    dropped_reason = Column(Text)
    notes = Column(Text)
    timestamp = Column(BigInteger, nullable=False)    # 쓰기 측이 부여한 논리 시계

    __table_args__ = (UniqueConstraint("user_id", "movie_id", name="uix_entry_user_movie"),)


# ------------------------------
# Friendship: 친구 관계 (요청자 -> 수신자 방향으로 저장)
# ------------------------------
def pair_key(a: str, b: str) -> str:
    # 방향과 무관한 {a, b} 쌍 키
    return "|".join(sorted((a, b)))


def _default_pair_key(context):
    params = context.get_current_parameters()
    return pair_key(params["requester_id"], params["recipient_id"])


class Friendship(Base):
    __tablename__ = "friendships"

    requester_id = Column(String(64), ForeignKey("users.id"), primary_key=True)
    recipient_id = Column(String(64), ForeignKey("users.id"), primary_key=True)
    status = Column(String(20), nullable=False, default="PENDING")   # PENDING / ACCEPTED
    # 쌍당 레코드 1개: 동시에 들어온 반대 방향 요청도 DB 제약으로 막음
    pair = Column(String(130), nullable=False, default=_default_pair_key)

    __table_args__ = (UniqueConstraint("pair", name="uix_friendship_pair"),)

    # 상대방 User 를 한 번의 조회로 함께 읽어오기 위한 관계
    requester = relationship("User", foreign_keys=[requester_id], lazy="joined")
    recipient = relationship("User", foreign_keys=[recipient_id], lazy="joined")

    def counterpart_of(self, user_id: str):
        return self.recipient if self.requester_id == user_id else self.requester


# ------------------------------
# ActivityEvent: 활동 피드 (추가 전용)
# ------------------------------
class ActivityEvent(Base):
    __tablename__ = "activity"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), index=True, nullable=False)   # 행위자
    type = Column(String(30), nullable=False)
    movie_id = Column(String(64))
    # "metadata" 는 Declarative 예약 속성이라 파이썬 속성명만 meta 로 둠
    meta = Column("metadata", JSON, default=dict)
    timestamp = Column(BigInteger, nullable=False, index=True)


# ------------------------------
# Challenge: 턴제 대결
# ------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(String(64), primary_key=True)
    creator_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    turn_user_id = Column(String(64), nullable=False)
    type = Column(String(30), nullable=False)          # BRACKET / TIERLIST / GUESS_THE_MOVIE
    size = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    movie_ids = Column(JSON, nullable=False)           # 생성 시 고정되는 영화 풀
    results = Column(JSON)                             # 타입별 진행 상태 (kind 로 구분)
    timestamp = Column(BigInteger, nullable=False)


# ------------------------------
# PendingCode: 이메일 일회용 인증 코드
# ------------------------------
class PendingCode(Base):
    __tablename__ = "pending_codes"

    email = Column(String(255), primary_key=True)
    code = Column(String(8), nullable=False)
    expires = Column(BigInteger, nullable=False)
