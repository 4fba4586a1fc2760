import asyncio
import unittest
from unittest.mock import patch

import httpx
from support import ASGI_BASE_URL, AsyncApiTestCase, movie

from reelreason.catalog import InMemoryCatalog
from reelreason.client import CloudClient
from reelreason.errors import InvalidCredential, NotFound, Unavailable, UsernameTaken
from reelreason.schemas import EntryIn
from reelreason.store import RecordStore
from reelreason.sync import LedgerSync, Poller, SocialSync, SyncSession, fingerprint

CATALOG = InMemoryCatalog(
    [
        movie("m1", "Action", "Sci-Fi", popularity=9),
        movie("m2", "Action", "Sci-Fi", popularity=8),
        movie("m3", "Drama", popularity=7),
        movie("m4", "Comedy", popularity=6),
        movie("m5", "Action", popularity=5),
    ],
    similar={"m1": ["m2"]},
)


def failing_client(status_code=503) -> CloudClient:
    def handler(request):
        return httpx.Response(status_code, json={"detail": "backend down"})

    return CloudClient(base_url=ASGI_BASE_URL, transport=httpx.MockTransport(handler))


class TestCloudClient(AsyncApiTestCase):
    async def test_http_errors_map_to_taxonomy(self):
        self.add_users("taken")
        async with self.cloud_client() as client:
            with self.assertRaises(NotFound):
                await client.get("/users/nobody")
            with self.assertRaises(UsernameTaken):
                await client.signup({"email": "x@example.com", "username": "taken"})

    async def test_one_time_code_sign_in(self):
        self.add_users("u_known")
        async with self.cloud_client() as client:
            await client.request_code("new@example.com")
            verified = await client.verify_code("new@example.com", self.issued_code("new@example.com"))
            self.assertTrue(verified["is_new_user"])
            self.assertIsNone(client.token)

            user = await client.signup({"id": verified["user_id"], "email": "new@example.com",
                                        "username": "newbie"})
            self.assertEqual(user["id"], verified["user_id"])
            self.assertEqual(client.token, user["token"])

        async with self.cloud_client() as client:
            await client.request_code("u_known@example.com")
            verified = await client.verify_code("u_known@example.com", self.issued_code("u_known@example.com"))
            self.assertFalse(verified["is_new_user"])
            self.assertEqual(client.token, verified["token"])
            with self.assertRaises(InvalidCredential):
                await client.verify_code("u_known@example.com", "0000")

    def issued_code(self, email):
        db = self.Session()
        try:
            return RecordStore(db).get("pending_codes", email=email).code
        finally:
            db.close()

    async def test_transport_failure_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = CloudClient(base_url=ASGI_BASE_URL, transport=httpx.MockTransport(handler))
        with self.assertRaises(Unavailable):
            await client.get("/entries")
        await client.aclose()

    async def test_server_error_is_unavailable(self):
        client = failing_client(500)
        with self.assertRaises(Unavailable):
            await client.get("/entries")
        await client.aclose()


class TestLedgerSync(AsyncApiTestCase):
    async def asyncSetUp(self):
        self.add_users("alice", "bob")
        self.client = self.cloud_client()
        await self.client.post("/entries", {"user_id": "alice", "movie_id": "m1", "status": "WATCHED",
                                            "rating": 9, "timestamp": 100})
        await self.client.post("/entries", {"user_id": "bob", "movie_id": "m5", "status": "WATCHED",
                                            "timestamp": 100})
        await self.client.post("/entries", {"user_id": "bob", "movie_id": "off-catalog", "status": "WATCHED",
                                            "timestamp": 100})

    async def asyncTearDown(self):
        await self.client.aclose()

    async def test_refresh_builds_derived_views(self):
        ledger = LedgerSync(self.client, CATALOG)
        self.assertTrue(await ledger.refresh("alice"))
        snap = ledger.snapshot

        self.assertEqual(snap.version, 1)
        self.assertEqual([e.movie_id for e in snap.entries], ["m1"])
        self.assertEqual({e.user_id for e in snap.friend_entries}, {"bob"})
        self.assertEqual(snap.grouped[0].source_movie.id, "m1")
        self.assertEqual([m.id for m in snap.grouped[0].movies], ["m2"])
        self.assertNotIn("m1", [r.movie_id for r in snap.recommendations])
        self.assertEqual(ledger.is_loading, False)

    async def test_silent_refresh_with_same_fingerprint_keeps_snapshot(self):
        ledger = LedgerSync(self.client, CATALOG)
        await ledger.refresh("alice")
        before = ledger.snapshot

        self.assertFalse(await ledger.refresh("alice", silent=True))
        self.assertIs(ledger.snapshot, before)
        self.assertEqual(ledger.snapshot.version, 1)

        # 다른 기기에서 쓴 기록은 다음 silent 새로고침에서 반영
        await self.client.post("/entries", {"user_id": "alice", "movie_id": "m3", "status": "WATCH_LATER",
                                            "timestamp": 200})
        self.assertTrue(await ledger.refresh("alice", silent=True))
        self.assertEqual(fingerprint(ledger.snapshot.entries), (2, 200))

    async def test_optimistic_update_is_visible_before_write(self):
        ledger = LedgerSync(self.client, CATALOG)
        await ledger.refresh("alice")

        task = ledger.update_entry(EntryIn(user_id="alice", movie_id="m4", status="WATCHED", rating=7))
        local = ledger.snapshot.entry_for("m4")
        self.assertIsNotNone(local)
        await task

        remote = await self.client.get("/entries", {"user_id": "alice"})
        self.assertIn("m4", {e["movie_id"] for e in remote})
        self.assertEqual(ledger.snapshot.entry_for("m4").rating, 7)

        await ledger.delete_entry("alice", "m4")
        self.assertIsNone(ledger.snapshot.entry_for("m4"))

    async def test_timestamps_are_monotonic(self):
        ledger = LedgerSync(self.client, CATALOG)
        stamps = [ledger.next_timestamp() for _ in range(50)]
        self.assertEqual(stamps, sorted(set(stamps)))

    async def test_failed_write_keeps_optimistic_state(self):
        client = failing_client()
        ledger = LedgerSync(client, CATALOG)
        task = ledger.update_entry(EntryIn(user_id="alice", movie_id="m2", status="DROPPED"))
        with self.assertRaises(Unavailable):
            await task
        self.assertEqual(ledger.snapshot.entry_for("m2").status, "DROPPED")
        await client.aclose()

    async def test_next_poll_drops_write_that_never_reached_server(self):
        ledger = LedgerSync(self.client, CATALOG)
        await ledger.refresh("alice")

        with patch.object(self.client, "post", side_effect=Unavailable("offline")):
            task = ledger.update_entry(EntryIn(user_id="alice", movie_id="m3", status="WATCHED", rating=6))
            with self.assertRaises(Unavailable):
                await task
        self.assertIsNotNone(ledger.snapshot.entry_for("m3"))

        # 네트워크 복구 후 첫 silent 폴링에서 서버 상태로 수렴
        self.assertTrue(await ledger.refresh("alice", silent=True))
        self.assertIsNone(ledger.snapshot.entry_for("m3"))
        self.assertEqual([e.movie_id for e in ledger.snapshot.entries], ["m1"])

    async def test_next_poll_restores_delete_that_never_reached_server(self):
        ledger = LedgerSync(self.client, CATALOG)
        await ledger.refresh("alice")

        with patch.object(self.client, "delete", side_effect=Unavailable("offline")):
            with self.assertRaises(Unavailable):
                await ledger.delete_entry("alice", "m1")
        self.assertIsNone(ledger.snapshot.entry_for("m1"))

        self.assertTrue(await ledger.refresh("alice", silent=True))
        self.assertIsNotNone(ledger.snapshot.entry_for("m1"))

    async def test_silent_refresh_swallows_unavailable(self):
        client = failing_client()
        ledger = LedgerSync(client, CATALOG)
        self.assertFalse(await ledger.refresh("alice", silent=True))
        self.assertEqual(ledger.snapshot.version, 0)
        with self.assertRaises(Unavailable):
            await ledger.refresh("alice")
        await client.aclose()


class TestSocialSync(AsyncApiTestCase):
    async def asyncSetUp(self):
        self.add_users("alice", "bob")
        self.client = self.cloud_client()

    async def asyncTearDown(self):
        await self.client.aclose()

    async def test_request_and_accept_roundtrip(self):
        alice, bob = SocialSync(self.client), SocialSync(self.client)
        await alice.send_request("alice", "bob")
        self.assertEqual(alice.snapshot.outgoing, ("bob",))

        await bob.refresh("bob")
        self.assertEqual([r.id for r in bob.snapshot.pending], ["alice"])
        await bob.accept_request("bob", "alice")
        self.assertEqual([u.id for u in bob.snapshot.friends], ["alice"])

        version = bob.snapshot.version
        self.assertFalse(await bob.refresh("bob", silent=True))
        self.assertEqual(bob.snapshot.version, version)

    async def test_failed_request_rolls_back(self):
        client = failing_client()
        social = SocialSync(client)
        with self.assertRaises(Unavailable):
            await social.send_request("alice", "bob")
        self.assertEqual(social.snapshot.outgoing, ())
        await client.aclose()


class TestPoller(unittest.IsolatedAsyncioTestCase):
    async def test_bootstrap_then_silent_ticks(self):
        calls = []

        async def refresh(silent):
            calls.append(silent)

        poller = Poller(refresh, interval=0.01)
        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        self.assertEqual(calls[0], False)
        self.assertTrue(len(calls) >= 2)
        self.assertTrue(all(calls[1:]))
        self.assertFalse(poller.running)

    async def test_foreground_wakes_immediately(self):
        calls = []

        async def refresh(silent):
            calls.append(silent)

        poller = Poller(refresh, interval=60)
        poller.start()
        await asyncio.sleep(0.01)
        poller.notify_foreground()
        await asyncio.sleep(0.01)
        await poller.stop()
        self.assertEqual(calls, [False, True])

    async def test_unavailable_is_survived_other_errors_surface_on_stop(self):
        outcomes = [Unavailable("offline"), None, RuntimeError("bug")]
        calls = []

        async def refresh(silent):
            calls.append(silent)
            outcome = outcomes.pop(0)
            if outcome is not None:
                raise outcome

        poller = Poller(refresh, interval=0.01)
        poller.start()
        await asyncio.sleep(0.1)
        self.assertEqual(len(calls), 3)
        with self.assertRaises(RuntimeError):
            await poller.stop()


class TestSyncSession(AsyncApiTestCase):
    async def test_session_refreshes_both_caches(self):
        self.add_users("alice")
        client = self.cloud_client()
        await client.post("/entries", {"user_id": "alice", "movie_id": "m1", "status": "WATCHED"})

        async with SyncSession(client, CATALOG, "alice", interval=0.01) as session:
            await asyncio.sleep(0.1)
            self.assertEqual([e.movie_id for e in session.ledger.snapshot.entries], ["m1"])
            self.assertEqual(session.social.snapshot.activity[0].type, "WATCHED")
        self.assertFalse(session.poller.running)
        await client.aclose()


if __name__ == "__main__":
    unittest.main()
