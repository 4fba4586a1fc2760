from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Sequence
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity
import numpy as np
from .config import RECOMMENDATION_LIMIT
from .schemas import Movie, EntryOut


@dataclass(frozen=True)
class Recommendation:
    movie_id: str
    score: float
    reasons: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GroupedRecommendation:
    # 최근 본 영화 1편(source) 과 장르가 겹치는 영화 묶음
    source_movie: Movie
    source_entry: EntryOut
    movies: List[Movie]


class ContentRecommender:
    def __init__(self):
        # TF-IDF 벡터라이저 설정
        # - stop_words='english' : 영어 불용어 제거
        # - ngram_range=(1,2)     : 유니그램+바이그램까지 고려
        self.vectorizer = TfidfVectorizer(
            stop_words='english',
            max_features=20000,
            ngram_range=(1, 2)
        )
        self.movie_ids: List[str] = []  # 인덱스<->영화ID 매핑을 위한 ID 리스트
        self.tfidf_matrix = None        # 모든 영화의 TF-IDF 행렬(희소행렬)

    def _build_corpus_row(self, m: Movie) -> str:
        # 제목, 장르, 개요를 공백으로 이어붙여 한 문서로 사용
        fields = [m.title or "", " ".join(m.genres), (m.overview or "")]
        return " ".join(fields)

    def fit(self, movies: Sequence[Movie]):
        self.movie_ids = [m.id for m in movies]
        corpus = [self._build_corpus_row(m) for m in movies]
        if len(corpus) == 0:
            self.tfidf_matrix = None
            return
        try:
            self.tfidf_matrix = self.vectorizer.fit_transform(corpus)
        except ValueError:
            # 불용어만 남아 어휘가 비는 경우
            self.tfidf_matrix = None

    def scores_for_movies(self, liked_movie_ids: List[str], weights: Optional[List[float]] = None) -> Dict[str, float]:
        # 사용자가 좋아한 영화(liked_movie_ids)를 기준으로 전체 후보 영화 점수 계산
        if self.tfidf_matrix is None or not self.movie_ids:
            return {}

        id_to_index = {mid: idx for idx, mid in enumerate(self.movie_ids)}
        pairs = [(id_to_index[mid], w) for mid, w in zip(liked_movie_ids, weights or [1.0] * len(liked_movie_ids))
                 if mid in id_to_index]
        if not pairs:
            return {}
        indices = [i for i, _ in pairs]

        # sims.shape = (num_movies, num_liked)
        sims = cosine_similarity(self.tfidf_matrix, self.tfidf_matrix[indices])

        # 가중치 정규화(합이 1)
        w = np.array([w for _, w in pairs], dtype=float)
        w = w / (np.sum(w) + 1e-12)
        scores = sims @ w

        result = {mid: float(scores[i]) for i, mid in enumerate(self.movie_ids)}
        for mid in liked_movie_ids:
            result.pop(mid, None)
        return result


# 전역 싱글턴식 추천기(간단 캐시)
_recommender = ContentRecommender()


def ensure_model(pool: Sequence[Movie]) -> ContentRecommender:
    # 영화 풀 구성이 바뀐 경우에만 다시 fit
    ids = [m.id for m in pool]
    if (_recommender.tfidf_matrix is None) or (_recommender.movie_ids != ids):
        _recommender.fit(pool)
    return _recommender


def last_watched(entries: Sequence[EntryOut], n: int = 3) -> List[EntryOut]:
    watched = [e for e in entries if e.status == "WATCHED"]
    return sorted(watched, key=lambda e: e.timestamp, reverse=True)[:n]


def find_similar_by_genre(source: Movie, pool: Sequence[Movie], count: int = 10) -> List[Movie]:
    """
    장르 겹침 수 기준 유사 영화.
    - 원본 장르가 2개 이상이면 최소 2개, 아니면 1개 이상 겹쳐야 후보
    """
    if not source.genres:
        return []
    source_genres = {g.lower() for g in source.genres}
    threshold = 2 if len(source.genres) >= 2 else 1

    matches = []
    for m in pool:
        if m.id == source.id:
            continue
        overlap = sum(1 for g in m.genres if g.lower() in source_genres)
        if overlap >= threshold:
            matches.append((overlap, m))
    # 안정 정렬: 겹침 수가 같으면 풀 순서 유지
    matches.sort(key=lambda x: x[0], reverse=True)
    return [m for _, m in matches[:count]]


def grouped_recommendations(pool: Sequence[Movie], entries: Sequence[EntryOut], count: int = 10) -> List[GroupedRecommendation]:
    by_id = {m.id: m for m in pool}
    groups = []
    for entry in last_watched(entries):
        source = by_id.get(entry.movie_id)
        if source is None:
            continue
        similar = find_similar_by_genre(source, pool, count)
        if similar:
            groups.append(GroupedRecommendation(source_movie=source, source_entry=entry, movies=similar))
    return groups


def recommend(pool: Sequence[Movie], entries: Sequence[EntryOut], friend_entries: Sequence[EntryOut],
              limit: int = RECOMMENDATION_LIMIT) -> List[Recommendation]:
    """
    아직 기록하지 않은 영화의 점수 = 친구 시청 수*5 + 장르 취향*2 + 콘텐츠 유사도*10.
    - 어떤 신호도 없으면 1점 ("Trending now.")
    """
    seen = {e.movie_id for e in entries}
    by_id = {m.id: m for m in pool}

    genre_weights: Dict[str, int] = {}
    for e in entries:
        if e.status == "WATCHED" and e.movie_id in by_id:
            for g in by_id[e.movie_id].genres:
                genre_weights[g] = genre_weights.get(g, 0) + 1

    friend_watchers: Dict[str, int] = {}
    for fe in friend_entries:
        if fe.status == "WATCHED":
            friend_watchers[fe.movie_id] = friend_watchers.get(fe.movie_id, 0) + 1

    # 고평점 시청 기록(최대 10편)을 평점 가중치로 콘텐츠 점수 계산
    rated = sorted((e for e in entries if e.status == "WATCHED"), key=lambda e: e.rating or 5, reverse=True)[:10]
    content = ensure_model(pool).scores_for_movies([e.movie_id for e in rated], [float(e.rating or 5) for e in rated]) if rated else {}

    out: List[Recommendation] = []
    for movie in pool:
        if movie.id in seen:
            continue
        score = 0.0
        reasons: List[str] = []

        watchers = friend_watchers.get(movie.id, 0)
        if watchers:
            score += watchers * 5
            reasons.append(f"{watchers} friends liked this.")

        genre_score = sum(genre_weights.get(g, 0) for g in movie.genres)
        if genre_score:
            score += genre_score * 2
            reasons.append("Matches your genre taste.")

        similarity = content.get(movie.id, 0.0)
        if similarity > 0.1:
            score += similarity * 10
            reasons.append("Similar to movies you rated highly.")

        if score == 0:
            score = 1.0
            reasons.append("Trending now.")

        out.append(Recommendation(movie_id=movie.id, score=float(score), reasons=reasons[:2]))

    out.sort(key=lambda r: r.score, reverse=True)
    return out[:limit]
