# ------------------------------------------------------------
# sync.py - 폴링 기반 동기화 클라이언트
#   - LedgerSync : 내 시청 기록 + 파생 추천 뷰 캐시
#   - SocialSync : 친구/요청/활동/대결 캐시
#   - Poller     : 주기 폴링 + 즉시 새로고침 신호
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional, Sequence, Set, Tuple

from .catalog import MovieCatalog
from .client import CloudClient
from .config import POLL_INTERVAL_SECONDS
from .errors import ReelReasonError, Unavailable
from .recommender import GroupedRecommendation, Recommendation, grouped_recommendations, last_watched, recommend
from .schemas import ActivityOut, ChallengeOut, EntryIn, EntryOut, FriendRequestOut, Movie, UserOut
from .store import now_ms

logger = logging.getLogger(__name__)


class Fingerprint(NamedTuple):
    count: int
    latest: int


def fingerprint(entries: Sequence[EntryOut]) -> Fingerprint:
    return Fingerprint(len(entries), max((e.timestamp for e in entries), default=0))


@dataclass(frozen=True)
class LedgerSnapshot:
    """한 번에 통째로 교체되는 캐시 상태. version 은 교체될 때마다 1 증가."""

    version: int = 0
    entries: Tuple[EntryOut, ...] = ()
    friend_entries: Tuple[EntryOut, ...] = ()
    movies: Tuple[Movie, ...] = ()
    grouped: Tuple[GroupedRecommendation, ...] = ()
    recommendations: Tuple[Recommendation, ...] = ()

    def entry_for(self, movie_id: str) -> Optional[EntryOut]:
        return next((e for e in self.entries if e.movie_id == movie_id), None)


class LedgerSync:
    def __init__(self, client: CloudClient, catalog: MovieCatalog):
        self.client = client
        self.catalog = catalog
        self.snapshot = LedgerSnapshot()
        self.is_loading = False
        self._fingerprint: Optional[Fingerprint] = None
        self._clock = 0

    def next_timestamp(self) -> int:
        # 같은 밀리초에 두 번 써도 증가하도록 보장
        self._clock = max(now_ms(), self._clock + 1)
        return self._clock

    async def refresh(self, user_id: str, silent: bool = False) -> bool:
        """
        원격 상태를 받아 캐시를 교체합니다. 교체했으면 True.

        - silent 이고 지문(개수, 최신 timestamp)이 지난번과 같으면 아무 것도 바꾸지 않음
        - silent 폴링 중의 Unavailable 은 로그만 남기고 마지막 정상 상태 유지
        """
        if not silent and not self.snapshot.entries:
            self.is_loading = True
        try:
            raw_entries, popular, raw_all = await asyncio.gather(
                self.client.get("/entries", {"user_id": user_id}),
                self.catalog.popular_movies(),
                self.client.get("/entries"),
            )
            entries = [EntryOut.model_validate(e) for e in raw_entries]
            friend_entries = [EntryOut.model_validate(e) for e in raw_all if e["user_id"] != user_id]

            current = fingerprint(entries)
            if silent and current == self._fingerprint:
                logger.debug("ledger for %s unchanged %s", user_id, current)
                return False

            movies = await self._complete_pool(popular, entries, friend_entries)
        except Unavailable as exc:
            if not silent:
                raise
            logger.warning("silent ledger refresh for %s failed: %s", user_id, exc)
            return False
        finally:
            self.is_loading = False

        self._publish(entries, friend_entries, movies)
        self._fingerprint = current
        return True

    async def _complete_pool(self, popular: List[Movie], entries: List[EntryOut],
                             friend_entries: List[EntryOut]) -> List[Movie]:
        pool = {m.id: m for m in popular}

        # 기록에는 있지만 인기 목록에 없는 영화는 단건 조회로 보충
        missing = [mid for mid in dict.fromkeys(e.movie_id for e in [*entries, *friend_entries]) if mid not in pool]
        for movie in await asyncio.gather(*(self.catalog.movie(mid) for mid in missing)):
            if movie is not None:
                pool.setdefault(movie.id, movie)

        # 최근 본 3편의 유사 영화도 풀에 추가
        batches = await asyncio.gather(*(self.catalog.similar(e.movie_id) for e in last_watched(entries)))
        for batch in batches:
            for movie in batch:
                pool.setdefault(movie.id, movie)
        return list(pool.values())

    def _publish(self, entries: Sequence[EntryOut], friend_entries: Sequence[EntryOut],
                 movies: Sequence[Movie]) -> None:
        # 파생 뷰를 모두 계산한 뒤 한 번의 대입으로 교체
        self.snapshot = LedgerSnapshot(
            version=self.snapshot.version + 1,
            entries=tuple(entries),
            friend_entries=tuple(friend_entries),
            movies=tuple(movies),
            grouped=tuple(grouped_recommendations(movies, entries)),
            recommendations=tuple(recommend(movies, entries, friend_entries)),
        )

    # -------------------------------
    # 낙관적 로컬 쓰기
    # -------------------------------
    def update_entry(self, entry: EntryIn) -> "asyncio.Task[None]":
        """
        캐시에 즉시 반영하고, 원격 쓰기는 백그라운드 태스크로 보냅니다.
        - 원격 쓰기가 실패해도 로컬 상태는 되돌리지 않음 (다음 폴링에서 수렴)
        - 실패는 반환된 태스크를 await 하는 쪽에 그대로 전달
        """
        stamped = EntryOut(**entry.model_dump(exclude={"timestamp"}),
                           timestamp=entry.timestamp or self.next_timestamp())
        entries = [e for e in self.snapshot.entries if e.movie_id != stamped.movie_id] + [stamped]
        self._publish(entries, self.snapshot.friend_entries, self.snapshot.movies)
        # 다음 폴링이 지문과 무관하게 서버 상태로 다시 맞추도록
        self._fingerprint = None
        return asyncio.create_task(self._persist(stamped))

    async def _persist(self, entry: EntryOut) -> None:
        try:
            await self.client.post("/entries", entry.model_dump())
        except ReelReasonError:
            logger.exception("durable write of %s/%s failed", entry.user_id, entry.movie_id)
            raise
        await self.refresh(entry.user_id, silent=True)

    def delete_entry(self, user_id: str, movie_id: str) -> "asyncio.Task[None]":
        entries = [e for e in self.snapshot.entries if e.movie_id != movie_id]
        self._publish(entries, self.snapshot.friend_entries, self.snapshot.movies)
        self._fingerprint = None
        return asyncio.create_task(self._remove(user_id, movie_id))

    async def _remove(self, user_id: str, movie_id: str) -> None:
        try:
            await self.client.delete("/entries", {"user_id": user_id, "movie_id": movie_id})
        except ReelReasonError:
            logger.exception("durable delete of %s/%s failed", user_id, movie_id)
            raise
        await self.refresh(user_id, silent=True)


@dataclass(frozen=True)
class SocialSnapshot:
    version: int = 0
    friends: Tuple[UserOut, ...] = ()
    users: Tuple[UserOut, ...] = ()
    pending: Tuple[FriendRequestOut, ...] = ()
    outgoing: Tuple[str, ...] = ()
    activity: Tuple[ActivityOut, ...] = ()
    challenges: Tuple[ChallengeOut, ...] = ()

    def challenge(self, challenge_id: str) -> Optional[ChallengeOut]:
        return next((c for c in self.challenges if c.id == challenge_id), None)

    def same_content(self, other: "SocialSnapshot") -> bool:
        return replace(self, version=0) == replace(other, version=0)


class SocialSync:
    def __init__(self, client: CloudClient):
        self.client = client
        self.snapshot = SocialSnapshot()
        self.is_loading = False
        self._requesting: Set[str] = set()

    async def refresh(self, user_id: str, silent: bool = False) -> bool:
        if not silent and not self.snapshot.users:
            self.is_loading = True
        try:
            friends, users, activity, pending, outgoing, challenges = await asyncio.gather(
                self.client.get("/social/friends", {"user_id": user_id}),
                self.client.get("/users"),
                self.client.get("/activity", {"user_id": user_id}),
                self.client.get("/social/requests/pending", {"user_id": user_id}),
                self.client.get("/social/requests/outgoing", {"user_id": user_id}),
                self.client.get("/challenges", {"user_id": user_id}),
            )
        except Unavailable as exc:
            if not silent:
                raise
            logger.warning("silent social refresh for %s failed: %s", user_id, exc)
            return False
        finally:
            self.is_loading = False

        fresh = SocialSnapshot(
            version=self.snapshot.version + 1,
            friends=tuple(UserOut.model_validate(u) for u in friends),
            users=tuple(UserOut.model_validate(u) for u in users),
            pending=tuple(FriendRequestOut.model_validate(r) for r in pending),
            outgoing=tuple(r["id"] for r in outgoing),
            activity=tuple(ActivityOut.model_validate(a) for a in activity),
            challenges=tuple(ChallengeOut.model_validate(c) for c in challenges),
        )
        if fresh.same_content(self.snapshot):
            return False
        self.snapshot = fresh
        return True

    def _replace(self, **changes: Any) -> None:
        self.snapshot = replace(self.snapshot, version=self.snapshot.version + 1, **changes)

    def apply_challenge(self, challenge: ChallengeOut) -> None:
        others = [c for c in self.snapshot.challenges if c.id != challenge.id]
        self._replace(challenges=tuple([challenge, *others]))

    def drop_challenge(self, challenge_id: str) -> None:
        self._replace(challenges=tuple(c for c in self.snapshot.challenges if c.id != challenge_id))

    async def send_request(self, user_id: str, friend_id: str) -> None:
        # 같은 대상에게 보내는 요청이 진행 중이면 무시
        if friend_id in self._requesting:
            return
        self._requesting.add(friend_id)
        if friend_id not in self.snapshot.outgoing:
            self._replace(outgoing=(*self.snapshot.outgoing, friend_id))
        try:
            await self.client.post("/social/request", {"user_id": user_id, "friend_id": friend_id})
        except ReelReasonError:
            self._replace(outgoing=tuple(i for i in self.snapshot.outgoing if i != friend_id))
            raise
        finally:
            self._requesting.discard(friend_id)
        await self.refresh(user_id, silent=True)

    async def accept_request(self, user_id: str, sender_id: str) -> None:
        await self.client.post("/social/accept", {"user_id": user_id, "sender_id": sender_id})
        await self.refresh(user_id, silent=True)

    async def reject_request(self, user_id: str, sender_id: str) -> None:
        await self.client.post("/social/reject", {"user_id": user_id, "sender_id": sender_id})
        await self.refresh(user_id, silent=True)


class Poller:
    """
    주기 폴링 태스크.

    - start(): 최초 1회 non-silent 새로고침 후 interval 마다 silent 새로고침
    - notify_foreground()/request_refresh(): 대기 중인 주기를 깨워 즉시 새로고침
    - stop(): 태스크 취소. 루프가 Unavailable 이외의 오류로 끝났다면 여기서 다시 발생
    """

    def __init__(self, refresh: Callable[[bool], Awaitable[Any]], interval: float = POLL_INTERVAL_SECONDS):
        self._refresh = refresh
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        await self._tick(silent=False)
        while True:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            await self._tick(silent=True)

    async def _tick(self, silent: bool) -> None:
        try:
            await self._refresh(silent)
        except Unavailable as exc:
            logger.warning("poll failed, retrying in %.1fs: %s", self.interval, exc)

    def request_refresh(self) -> None:
        if self._wake is not None:
            self._wake.set()

    def notify_foreground(self) -> None:
        self.request_refresh()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class SyncSession:
    """로그인한 사용자 한 명의 기록/소셜 캐시와 폴러를 묶은 단위."""

    def __init__(self, client: CloudClient, catalog: MovieCatalog, user_id: str,
                 interval: float = POLL_INTERVAL_SECONDS):
        self.user_id = user_id
        self.ledger = LedgerSync(client, catalog)
        self.social = SocialSync(client)
        self.poller = Poller(self.refresh, interval)

    async def refresh(self, silent: bool = False) -> None:
        await asyncio.gather(
            self.ledger.refresh(self.user_id, silent),
            self.social.refresh(self.user_id, silent),
        )

    def update_entry(self, entry: EntryIn) -> "asyncio.Task[None]":
        return self.ledger.update_entry(entry)

    def delete_entry(self, movie_id: str) -> "asyncio.Task[None]":
        return self.ledger.delete_entry(self.user_id, movie_id)

    def start(self) -> None:
        self.poller.start()

    def notify_foreground(self) -> None:
        self.poller.notify_foreground()

    async def stop(self) -> None:
        await self.poller.stop()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()
