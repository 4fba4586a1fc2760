import unittest

from support import movie

from reelreason.recommender import find_similar_by_genre, grouped_recommendations, last_watched, recommend
from reelreason.schemas import EntryOut

POOL = [
    movie("matrix", "Action", "Sci-Fi", overview="hacker discovers simulated reality and fights machines"),
    movie("inception", "Action", "Sci-Fi", overview="thief enters dreams to plant an idea"),
    movie("heat", "Action", "Crime", overview="detective hunts a crew of professional thieves"),
    movie("notebook", "Romance", "Drama", overview="summer love story told from a notebook"),
    movie("up", "Animation", "Family", overview="old man ties balloons to his house"),
]


def entry(user_id, movie_id, status="WATCHED", rating=None, ts=1):
    return EntryOut(user_id=user_id, movie_id=movie_id, status=status, rating=rating, timestamp=ts)


class TestGenreGroups(unittest.TestCase):
    def test_two_genre_source_needs_two_overlaps(self):
        similar = find_similar_by_genre(POOL[0], POOL)
        self.assertEqual([m.id for m in similar], ["inception"])

    def test_single_genre_source_needs_one_overlap(self):
        similar = find_similar_by_genre(movie("solo", "Action"), POOL)
        self.assertEqual([m.id for m in similar], ["matrix", "inception", "heat"])

    def test_groups_follow_last_three_watched(self):
        entries = [
            entry("me", "notebook", ts=1),
            entry("me", "matrix", ts=5),
            entry("me", "heat", status="WATCH_LATER", ts=9),
            entry("me", "up", ts=3),
            entry("me", "inception", ts=4),
        ]
        self.assertEqual([e.movie_id for e in last_watched(entries)], ["matrix", "inception", "up"])

        groups = grouped_recommendations(POOL, entries)
        self.assertEqual([g.source_movie.id for g in groups], ["matrix", "inception"])
        self.assertEqual([m.id for m in groups[0].movies], ["inception"])


class TestRecommend(unittest.TestCase):
    def test_without_signals_everything_is_trending(self):
        recs = recommend(POOL, [], [])
        self.assertEqual(len(recs), len(POOL))
        self.assertTrue(all(r.score == 1.0 and r.reasons == ["Trending now."] for r in recs))

    def test_recorded_movies_are_excluded(self):
        recs = recommend(POOL, [entry("me", "matrix", rating=9), entry("me", "up", status="WATCH_LATER")], [])
        self.assertNotIn("matrix", [r.movie_id for r in recs])
        self.assertNotIn("up", [r.movie_id for r in recs])

    def test_friends_and_genre_taste_rank_first(self):
        mine = [entry("me", "matrix", rating=9)]
        friends = [entry("f1", "notebook"), entry("f2", "notebook"), entry("f1", "up", status="DROPPED")]
        recs = recommend(POOL, mine, friends, limit=2)

        self.assertEqual([r.movie_id for r in recs], ["notebook", "inception"])
        self.assertEqual(recs[0].reasons[0], "2 friends liked this.")
        self.assertIn("Matches your genre taste.", recs[1].reasons)
        self.assertLessEqual(max(len(r.reasons) for r in recs), 2)


if __name__ == "__main__":
    unittest.main()
