from typing import Optional, List, Dict, Any, Literal, Union, Annotated
from pydantic import BaseModel, Field

WatchStatus = Literal["WATCHED", "WATCH_LATER", "DROPPED"]
ChallengeType = Literal["BRACKET", "TIERLIST", "GUESS_THE_MOVIE"]
ChallengeStatus = Literal["PENDING", "ACTIVE", "COMPLETED"]
ActivityType = Literal["WATCHED", "DROPPED", "WATCH_LATER", "RATED", "FRIEND_ADDED", "CHALLENGE_COMPLETED"]

# 티어 라벨 (위에서 아래 순서)
TIERS = ("S", "A", "B", "C", "D", "F")


# ------------------------------------------------------------
# Movie: 외부 메타데이터 제공자가 돌려주는 영화 레코드
# ------------------------------------------------------------
class Movie(BaseModel):
    id: str
    title: str
    year: Optional[int] = None
    genres: List[str] = []            # 첫 번째 항목이 대표 장르
    overview: Optional[str] = None
    poster_url: Optional[str] = None
    popularity: Optional[float] = 0

    @property
    def primary_genre(self) -> Optional[str]:
        return self.genres[0] if self.genres else None


# ------------------------------------------------------------
# User 관련 스키마
# ------------------------------------------------------------
class UserOut(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    favorite_genres: List[str] = []
    favorite_movie_id: Optional[str] = None
    is_verified: bool = False
    created_at: int

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    # 부분 수정: 보낸 필드만 반영 (id/email/created_at 은 불변)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    favorite_genres: Optional[List[str]] = None
    favorite_movie_id: Optional[str] = None


class SignupIn(BaseModel):
    id: Optional[str] = None          # verify 단계에서 발급된 ID 를 그대로 사용
    email: str
    username: str = Field(..., min_length=3, max_length=30)
    first_name: str = ""
    last_name: str = ""
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    favorite_genres: List[str] = []


class SessionUserOut(UserOut):
    token: Optional[str] = None


class OtpIn(BaseModel):
    email: str


class VerifyIn(BaseModel):
    email: str
    code: str


class VerifyOut(BaseModel):
    success: bool
    is_new_user: bool
    user_id: str
    token: Optional[str] = None


# ------------------------------------------------------------
# MovieEntry: 시청 기록 요청/응답 스키마
# ------------------------------------------------------------
class EntryIn(BaseModel):
    user_id: str
    movie_id: str
    status: WatchStatus
    rating: Optional[int] = Field(None, ge=1, le=10)
    dropped_reason: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)
    timestamp: Optional[int] = None   # 없으면 서버가 현재 시각으로 채움


class EntryOut(BaseModel):
    user_id: str
    movie_id: str
    status: WatchStatus
    rating: Optional[int] = None
    dropped_reason: Optional[str] = None
    notes: Optional[str] = None
    timestamp: int

    class Config:
        from_attributes = True


# ------------------------------------------------------------
# Social: 친구 요청/응답
# ------------------------------------------------------------
class FriendRequestIn(BaseModel):
    user_id: str
    friend_id: str


class FriendResponseIn(BaseModel):
    user_id: str
    sender_id: str


class FriendRequestOut(BaseModel):
    id: str           # 상대방 사용자 ID
    user: UserOut     # 상대방 User (조인 결과)


class ActivityOut(BaseModel):
    id: str
    user_id: str
    type: ActivityType
    movie_id: Optional[str] = None
    metadata: Dict[str, Any] = {}
    timestamp: int


# ------------------------------------------------------------
# Challenge 진행 상태: kind 로 구분되는 태그드 유니온
# ------------------------------------------------------------
class BracketProgress(BaseModel):
    kind: Literal["BRACKET"] = "BRACKET"
    items: List[str]
    winners: List[str] = []
    index: int = 0
    round: int = 1
    final_winner: Optional[str] = None


class TierListProgress(BaseModel):
    kind: Literal["TIERLIST"] = "TIERLIST"
    tiers: Dict[str, List[str]] = Field(default_factory=lambda: {t: [] for t in TIERS})

    def placed(self) -> set:
        return {mid for ids in self.tiers.values() for mid in ids}


class GuessProgress(BaseModel):
    kind: Literal["GUESS_THE_MOVIE"] = "GUESS_THE_MOVIE"
    index: int = 0
    correct: List[str] = []
    skipped: List[str] = []
    start_time: int                   # epoch milliseconds
    time_limit_mins: int


Progress = Annotated[
    Union[BracketProgress, TierListProgress, GuessProgress],
    Field(discriminator="kind"),
]


class ChallengeIn(BaseModel):
    creator_id: str
    recipient_id: str
    turn_user_id: Optional[str] = None   # 없으면 생성자
    type: ChallengeType
    size: int
    status: ChallengeStatus = "PENDING"
    movie_ids: List[str]
    results: Optional[Progress] = None


class ChallengeUpdate(BaseModel):
    status: Optional[ChallengeStatus] = None
    turn_user_id: Optional[str] = None
    results: Optional[Progress] = None


class ChallengeOut(BaseModel):
    id: str
    creator_id: str
    recipient_id: str
    turn_user_id: str
    type: ChallengeType
    size: int
    status: ChallengeStatus
    movie_ids: List[str]
    results: Optional[Progress] = None
    timestamp: int

    class Config:
        from_attributes = True
