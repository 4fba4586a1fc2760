import random
import unittest

from support import movie

from reelreason import challenges as rules
from reelreason.errors import ChallengeClosed, InsufficientPool, NotYourTurn
from reelreason.schemas import ChallengeOut, EntryOut

MINUTE_MS = 60_000


def make_challenge(type, movie_ids, now=0, time_limit_mins=5) -> ChallengeOut:
    payload = rules.new_challenge("creator", "rival", type, movie_ids, now, time_limit_mins)
    return ChallengeOut(id="ch_test", timestamp=now, **payload.model_dump())


def watched(user_id, movie_id):
    return EntryOut(user_id=user_id, movie_id=movie_id, status="WATCHED", timestamp=1)


class TestPoolAssembly(unittest.TestCase):
    def test_new_challenge_starts_with_recipient(self):
        ch = make_challenge("BRACKET", [f"m{i}" for i in range(16)])
        self.assertEqual(ch.status, "ACTIVE")
        self.assertEqual(ch.turn_user_id, "rival")
        self.assertEqual(ch.results.items, ch.movie_ids)

    def test_watched_movies_and_catalog_are_merged(self):
        own = [watched("creator", "w1"), watched("creator", "w2")]
        friend = [watched("rival", "w2"), EntryOut(user_id="rival", movie_id="later", status="WATCH_LATER", timestamp=1)]
        catalog = [movie(f"c{i}", "Drama") for i in range(3)]

        pool = rules.assemble_pool("GUESS_THE_MOVIE", 5, own, friend, catalog, random.Random(7))
        self.assertEqual(sorted(pool), ["c0", "c1", "c2", "w1", "w2"])

    def test_guess_pool_excludes_animation(self):
        catalog = [movie("toon", "Animation", "Comedy")] + [movie(f"c{i}", "Comedy", "Animation") for i in range(4)]
        pool = rules.assemble_pool("GUESS_THE_MOVIE", 5, [watched("creator", "unknown")], [], catalog)
        self.assertNotIn("toon", pool)
        self.assertIn("unknown", pool)

        # 다른 종류의 대결에서는 제외하지 않음
        with self.assertRaises(InsufficientPool):
            rules.assemble_pool("GUESS_THE_MOVIE", 10, [], [], catalog)
        pool = rules.assemble_pool("TIERLIST", 10, [], [], catalog + [movie(f"x{i}") for i in range(5)])
        self.assertIn("toon", pool)

    def test_insufficient_pool(self):
        with self.assertRaises(InsufficientPool):
            rules.assemble_pool("BRACKET", 16, [], [], [movie(f"c{i}") for i in range(15)])

    def test_size_must_match_type(self):
        with self.assertRaises(ValueError):
            rules.assemble_pool("BRACKET", 10, [], [], [movie(f"c{i}") for i in range(20)])


class TestBracket(unittest.TestCase):
    def test_sixteen_items_finish_in_four_rounds(self):
        ch = make_challenge("BRACKET", [f"m{i}" for i in range(16)])
        actions = 0
        while ch.status != "COMPLETED":
            p = ch.results
            ch = rules.pick_winner(ch, "rival", p.items[p.index])
            actions += 1

        self.assertEqual(actions, 15)
        self.assertEqual(ch.results.round, 4)
        self.assertEqual(ch.results.final_winner, "m0")
        self.assertEqual(ch.turn_user_id, "creator")

    def test_turn_is_kept_between_pairings(self):
        ch = make_challenge("BRACKET", [f"m{i}" for i in range(16)])
        ch = rules.pick_winner(ch, "rival", "m1")
        self.assertEqual(ch.turn_user_id, "rival")
        self.assertEqual(ch.results.winners, ["m1"])
        self.assertEqual(ch.results.index, 2)

    def test_winner_must_come_from_current_pair(self):
        ch = make_challenge("BRACKET", [f"m{i}" for i in range(16)])
        with self.assertRaises(ValueError):
            rules.pick_winner(ch, "rival", "m5")

    def test_only_turn_holder_may_play(self):
        ch = make_challenge("BRACKET", [f"m{i}" for i in range(16)])
        with self.assertRaises(NotYourTurn):
            rules.pick_winner(ch, "creator", "m0")


class TestTierList(unittest.TestCase):
    def test_completes_once_every_movie_is_placed(self):
        ids = [f"m{i}" for i in range(10)]
        ch = make_challenge("TIERLIST", ids)
        ch = rules.assign_tier(ch, "rival", "m0", "S")
        ch = rules.assign_tier(ch, "rival", "m0", "F")
        self.assertEqual(ch.results.tiers["S"], [])
        self.assertEqual(ch.results.tiers["F"], ["m0"])

        for mid in ids[1:]:
            self.assertEqual(ch.status, "ACTIVE")
            ch = rules.assign_tier(ch, "rival", mid, "B")
        self.assertEqual(ch.status, "COMPLETED")
        self.assertEqual(ch.turn_user_id, "creator")

    def test_rejects_foreign_movie_and_unknown_tier(self):
        ch = make_challenge("TIERLIST", [f"m{i}" for i in range(10)])
        with self.assertRaises(ValueError):
            rules.assign_tier(ch, "rival", "other", "S")
        with self.assertRaises(ValueError):
            rules.assign_tier(ch, "rival", "m0", "Z")


class TestGuessTheMovie(unittest.TestCase):
    def setUp(self):
        self.ids = [f"m{i}" for i in range(5)]
        self.ch = make_challenge("GUESS_THE_MOVIE", self.ids, now=0, time_limit_mins=5)

    def test_all_correct_completes_after_five_guesses(self):
        ch = self.ch
        for n, mid in enumerate(self.ids, start=1):
            ch = rules.guess(ch, "rival", mid, now=n * 1000)
        self.assertEqual(ch.status, "COMPLETED")
        self.assertEqual(ch.results.correct, self.ids)
        self.assertEqual(ch.results.skipped, [])
        self.assertEqual(ch.turn_user_id, "creator")

    def test_wrong_guess_is_silently_rejected(self):
        self.assertIs(rules.guess(self.ch, "rival", "m4", now=1000), self.ch)

    def test_skip_advances(self):
        ch = rules.skip(self.ch, "rival", now=1000)
        ch = rules.guess(ch, "rival", "m1", now=2000)
        self.assertEqual(ch.results.skipped, ["m0"])
        self.assertEqual(ch.results.correct, ["m1"])
        self.assertEqual(ch.results.index, 2)
        self.assertEqual(ch.turn_user_id, "rival")

    def test_timeout_forces_completion_once(self):
        ch = rules.guess(self.ch, "rival", "m0", now=1000)
        self.assertIs(rules.expire(ch, now=5 * MINUTE_MS - 1), ch)

        expired = rules.expire(ch, now=5 * MINUTE_MS)
        self.assertEqual(expired.status, "COMPLETED")
        self.assertEqual(expired.turn_user_id, "creator")
        self.assertEqual(expired.results.correct, ["m0"])

        self.assertIs(rules.expire(expired, now=6 * MINUTE_MS), expired)
        self.assertIs(rules.finish(expired), expired)
        with self.assertRaises(ChallengeClosed):
            rules.guess(expired, "creator", "m1", now=6 * MINUTE_MS)

    def test_action_past_deadline_expires_instead(self):
        ch = rules.guess(self.ch, "rival", "m0", now=5 * MINUTE_MS + 1)
        self.assertEqual(ch.status, "COMPLETED")
        self.assertEqual(ch.results.correct, [])

    def test_remaining_seconds(self):
        self.assertEqual(rules.remaining_seconds(self.ch, now=60_000), 240.0)
        self.assertEqual(rules.remaining_seconds(self.ch, now=10 * MINUTE_MS), 0.0)


if __name__ == "__main__":
    unittest.main()
