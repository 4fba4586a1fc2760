# ------------------------------------------------------------
# challenges.py - 턴제 대결 엔진
#   - 순수 함수: 진행 상태(ChallengeOut) -> 새 진행 상태
#   - ChallengeEngine: 순수 함수 결과를 원격 저장소에 반영
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Dict, List, Optional, Sequence

from .catalog import MovieCatalog
from .client import CloudClient
from .config import DEFAULT_TIME_LIMIT_MINS, POLL_INTERVAL_SECONDS
from .errors import ChallengeClosed, InsufficientPool, NotFound, NotYourTurn, ReelReasonError, Unavailable
from .schemas import (
    TIERS, BracketProgress, ChallengeIn, ChallengeOut, ChallengeUpdate, EntryOut,
    GuessProgress, Movie, TierListProgress,
)
from .store import now_ms

logger = logging.getLogger(__name__)

# 대결 종류별 허용 풀 크기
SIZES: Dict[str, tuple] = {
    "BRACKET": (16, 32, 64),
    "TIERLIST": (10, 20, 50),
    "GUESS_THE_MOVIE": (5, 10, 20),
}

# 실루엣만 보고도 맞히기 쉬운 장르
EXCLUDED_GUESS_GENRE = "Animation"


# -------------------------------
# 생성
# -------------------------------
def assemble_pool(type: str, size: int, own_entries: Sequence[EntryOut], friend_entries: Sequence[EntryOut],
                  catalog_movies: Sequence[Movie], rng: Optional[random.Random] = None) -> List[str]:
    """
    두 참가자의 WATCHED 영화 + 카탈로그 영화로 후보를 만들고 size 개를 비복원 추출.

    - GUESS_THE_MOVIE 는 대표 장르가 Animation 인 후보 제외 (메타데이터가 없는 영화는 유지)
    - 후보가 size 보다 적으면 InsufficientPool
    """
    if size not in SIZES.get(type, ()):
        raise ValueError(f"size {size} is not allowed for {type}")

    by_id = {m.id: m for m in catalog_movies}
    watched = [e.movie_id for e in [*own_entries, *friend_entries] if e.status == "WATCHED"]
    candidates = list(dict.fromkeys([*watched, *(m.id for m in catalog_movies)]))

    if type == "GUESS_THE_MOVIE":
        candidates = [
            mid for mid in candidates
            if mid not in by_id or by_id[mid].primary_genre != EXCLUDED_GUESS_GENRE
        ]

    if len(candidates) < size:
        raise InsufficientPool(f"need {size} movies for {type}, only {len(candidates)} available")
    return (rng or random).sample(candidates, size)


def initial_progress(type: str, movie_ids: List[str], now: int, time_limit_mins: int = DEFAULT_TIME_LIMIT_MINS):
    if type == "BRACKET":
        return BracketProgress(items=list(movie_ids))
    if type == "TIERLIST":
        return TierListProgress()
    return GuessProgress(start_time=now, time_limit_mins=time_limit_mins)


def new_challenge(creator_id: str, recipient_id: str, type: str, movie_ids: List[str], now: int,
                  time_limit_mins: int = DEFAULT_TIME_LIMIT_MINS) -> ChallengeIn:
    # 초대받은 쪽이 먼저 플레이 (생성자는 두 번째)
    return ChallengeIn(
        creator_id=creator_id,
        recipient_id=recipient_id,
        turn_user_id=recipient_id,
        type=type,
        size=len(movie_ids),
        status="ACTIVE",
        movie_ids=list(movie_ids),
        results=initial_progress(type, movie_ids, now, time_limit_mins),
    )


# -------------------------------
# 공통 규칙
# -------------------------------
def _ensure_playable(ch: ChallengeOut, user_id: str) -> None:
    if ch.status == "COMPLETED":
        raise ChallengeClosed(f"challenge {ch.id} is already completed")
    if ch.turn_user_id != user_id:
        raise NotYourTurn(f"it is {ch.turn_user_id}'s turn in {ch.id}")


def _complete(ch: ChallengeOut, results) -> ChallengeOut:
    # 완료되면 결과 확인을 위해 턴을 생성자에게 넘김
    return ch.model_copy(update={"status": "COMPLETED", "turn_user_id": ch.creator_id, "results": results})


def _progress(ch: ChallengeOut, results) -> ChallengeOut:
    return ch.model_copy(update={"results": results})


# -------------------------------
# BRACKET
# -------------------------------
def pick_winner(ch: ChallengeOut, user_id: str, winner: str) -> ChallengeOut:
    _ensure_playable(ch, user_id)
    p: BracketProgress = ch.results
    pair = p.items[p.index:p.index + 2]
    if winner not in pair:
        raise ValueError(f"{winner} is not in the current pairing {pair}")

    winners = [*p.winners, winner]
    index = p.index + 2
    if index < len(p.items):
        return _progress(ch, p.model_copy(update={"winners": winners, "index": index}))
    if len(winners) == 1:
        return _complete(ch, p.model_copy(update={"winners": winners, "index": index, "final_winner": winner}))
    # 다음 라운드
    return _progress(ch, p.model_copy(update={"items": winners, "winners": [], "index": 0, "round": p.round + 1}))


# -------------------------------
# TIERLIST
# -------------------------------
def assign_tier(ch: ChallengeOut, user_id: str, movie_id: str, tier: str) -> ChallengeOut:
    _ensure_playable(ch, user_id)
    if tier not in TIERS:
        raise ValueError(f"unknown tier {tier!r}")
    if movie_id not in ch.movie_ids:
        raise ValueError(f"{movie_id} is not part of challenge {ch.id}")

    p: TierListProgress = ch.results
    tiers = {t: [mid for mid in p.tiers.get(t, []) if mid != movie_id] for t in TIERS}
    tiers[tier].append(movie_id)
    results = p.model_copy(update={"tiers": tiers})
    if results.placed() >= set(ch.movie_ids):
        return _complete(ch, results)
    return _progress(ch, results)


# -------------------------------
# GUESS_THE_MOVIE
# -------------------------------
def _deadline(p: GuessProgress) -> int:
    return p.start_time + p.time_limit_mins * 60_000


def remaining_seconds(ch: ChallengeOut, now: int) -> float:
    p = ch.results
    if ch.status == "COMPLETED" or not isinstance(p, GuessProgress):
        return 0.0
    return max(0.0, (_deadline(p) - now) / 1000)


def _advance(ch: ChallengeOut, p: GuessProgress, **changes) -> ChallengeOut:
    results = p.model_copy(update={"index": p.index + 1, **changes})
    if results.index >= len(ch.movie_ids):
        return _complete(ch, results)
    return _progress(ch, results)


def guess(ch: ChallengeOut, user_id: str, movie_id: str, now: int) -> ChallengeOut:
    """정답이면 correct 에 추가하고 다음 문제로. 오답이면 같은 객체를 그대로 반환."""
    _ensure_playable(ch, user_id)
    p: GuessProgress = ch.results
    if now >= _deadline(p):
        return expire(ch, now)
    if movie_id != ch.movie_ids[p.index]:
        return ch
    return _advance(ch, p, correct=[*p.correct, movie_id])


def skip(ch: ChallengeOut, user_id: str, now: int) -> ChallengeOut:
    _ensure_playable(ch, user_id)
    p: GuessProgress = ch.results
    if now >= _deadline(p):
        return expire(ch, now)
    return _advance(ch, p, skipped=[*p.skipped, ch.movie_ids[p.index]])


def expire(ch: ChallengeOut, now: int) -> ChallengeOut:
    """제한 시간이 지났으면 지금까지의 결과로 강제 완료. 해당 없으면 같은 객체 반환."""
    p = ch.results
    if ch.status == "COMPLETED" or not isinstance(p, GuessProgress) or now < _deadline(p):
        return ch
    return _complete(ch, p)


def finish(ch: ChallengeOut) -> ChallengeOut:
    # 수동 완료. 이미 완료된 대결이면 변화 없음
    if ch.status == "COMPLETED":
        return ch
    return _complete(ch, ch.results)


# ------------------------------------------------------------
# ChallengeEngine: 원격 저장소 연동
# ------------------------------------------------------------
class ChallengeEngine:
    """
    대결 생성/진행/포기를 원격 저장소에 반영합니다.

    - 진행 결과는 social 캐시에 먼저 반영하고, 원격 쓰기가 실패하면 이전 상태로 되돌림
    - 퀴즈 제한 시간은 watch_timeout 으로 대결당 최대 1회만 강제 완료
    """

    def __init__(self, client: CloudClient, catalog: MovieCatalog, social=None,
                 clock: Callable[[], int] = now_ms, rng: Optional[random.Random] = None,
                 retry_interval: float = POLL_INTERVAL_SECONDS):
        self.client = client
        self.catalog = catalog
        self.social = social
        self.clock = clock
        self.rng = rng
        self.retry_interval = retry_interval
        self._timers: Dict[str, asyncio.Task] = {}

    async def create(self, creator_id: str, recipient_id: str, type: str, size: int,
                     time_limit_mins: int = DEFAULT_TIME_LIMIT_MINS) -> ChallengeOut:
        own, friend, popular = await asyncio.gather(
            self.client.get("/entries", {"user_id": creator_id}),
            self.client.get("/entries", {"user_id": recipient_id}),
            self.catalog.popular_movies(),
        )
        movie_ids = assemble_pool(
            type, size,
            [EntryOut.model_validate(e) for e in own],
            [EntryOut.model_validate(e) for e in friend],
            popular, self.rng,
        )
        payload = new_challenge(creator_id, recipient_id, type, movie_ids, self.clock(), time_limit_mins)
        challenge = ChallengeOut.model_validate(await self.client.post("/challenges", payload.model_dump()))
        logger.info("created %s %s for %s", type, challenge.id, recipient_id)
        if self.social is not None:
            self.social.apply_challenge(challenge)
        return challenge

    async def load(self, challenge_id: str) -> ChallengeOut:
        return ChallengeOut.model_validate(await self.client.get(f"/challenges/{challenge_id}"))

    async def _submit(self, before: ChallengeOut, after: ChallengeOut) -> ChallengeOut:
        if after is before:
            return before
        if self.social is not None:
            self.social.apply_challenge(after)

        update = ChallengeUpdate(status=after.status, turn_user_id=after.turn_user_id, results=after.results)
        try:
            raw = await self.client.put(f"/challenges/{after.id}", update.model_dump())
        except ReelReasonError:
            if self.social is not None:
                self.social.apply_challenge(before)
            raise
        stored = ChallengeOut.model_validate(raw)
        if self.social is not None:
            self.social.apply_challenge(stored)
        return stored

    async def pick_winner(self, ch: ChallengeOut, user_id: str, winner: str) -> ChallengeOut:
        return await self._submit(ch, pick_winner(ch, user_id, winner))

    async def assign_tier(self, ch: ChallengeOut, user_id: str, movie_id: str, tier: str) -> ChallengeOut:
        return await self._submit(ch, assign_tier(ch, user_id, movie_id, tier))

    async def guess(self, ch: ChallengeOut, user_id: str, movie_id: str) -> ChallengeOut:
        return await self._submit(ch, guess(ch, user_id, movie_id, self.clock()))

    async def skip(self, ch: ChallengeOut, user_id: str) -> ChallengeOut:
        return await self._submit(ch, skip(ch, user_id, self.clock()))

    async def finish(self, ch: ChallengeOut, user_id: str) -> ChallengeOut:
        if ch.status == "COMPLETED":
            return ch
        _ensure_playable(ch, user_id)
        return await self._submit(ch, finish(ch))

    async def expire(self, ch: ChallengeOut) -> ChallengeOut:
        return await self._submit(ch, expire(ch, self.clock()))

    # -------------------------------
    # 퀴즈 제한 시간 타이머
    # -------------------------------
    def watch_timeout(self, ch: ChallengeOut) -> Optional[asyncio.Task]:
        if ch.status == "COMPLETED" or not isinstance(ch.results, GuessProgress):
            return None
        if ch.id in self._timers:
            return self._timers[ch.id]
        task = asyncio.create_task(self._fire_timeout(ch.id, remaining_seconds(ch, self.clock())))
        self._timers[ch.id] = task
        return task

    async def _fire_timeout(self, challenge_id: str, delay: float) -> None:
        """
        제한 시간이 지나면 강제 완료를 제출합니다.
        - Unavailable 이면 retry_interval 뒤 다시 시도
        - 그 사이 대결이 삭제되었으면(NotFound) 종료
        """
        try:
            await asyncio.sleep(delay)
            while True:
                try:
                    # 그 사이 상대가 진행했을 수 있으므로 최신 상태 기준으로 판단
                    current = await self.load(challenge_id)
                    expired = expire(current, self.clock())
                    if expired is not current:
                        logger.info("time limit reached for %s, forcing completion", challenge_id)
                        await self._submit(current, expired)
                    return
                except NotFound:
                    logger.info("challenge %s no longer exists, timer dropped", challenge_id)
                    return
                except Unavailable as exc:
                    logger.warning("forced completion of %s failed, retrying in %.1fs: %s",
                                   challenge_id, self.retry_interval, exc)
                    await asyncio.sleep(self.retry_interval)
        finally:
            if self._timers.get(challenge_id) is asyncio.current_task():
                del self._timers[challenge_id]

    async def cancel_timers(self) -> None:
        pending = [t for t in self._timers.values() if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    async def abandon(self, challenge_id: str) -> None:
        timer = self._timers.pop(challenge_id, None)
        if timer is not None and not timer.done():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass
        await self.client.delete("/challenges", {"id": challenge_id})
        logger.info("abandoned challenge %s", challenge_id)
        if self.social is not None:
            self.social.drop_challenge(challenge_id)
