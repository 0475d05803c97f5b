import unittest
from unittest.mock import AsyncMock

from noor_qa.sessions import (
    DEFAULT_SESSION_TTL,
    CookieOptions,
    KeyValueSessionStore,
    Session,
)
from noor_qa.storage import InMemoryKeyValueStore, StoreError


class KeyValueSessionStoreTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.kv = InMemoryKeyValueStore()
        self.store = KeyValueSessionStore(self.kv)

    async def test_get_missing_session_is_none(self):
        self.assertIsNone(await self.store.get("nope"))

    async def test_set_and_get(self):
        await self.store.set("abc", {"authenticated": True, "cookie": {"maxAge": 60}})
        self.assertEqual(
            await self.store.get("abc"),
            {"authenticated": True, "cookie": {"maxAge": 60}},
        )
        self.assertIn("sess:abc", self.kv.stored_objects)

    async def test_ttl_follows_cookie_max_age(self):
        kv = AsyncMock()
        store = KeyValueSessionStore(kv)
        await store.set("abc", {"cookie": {"maxAge": 28800}})
        kv.set.assert_awaited_once_with("sess:abc", {"cookie": {"maxAge": 28800}}, ttl=28800)

    async def test_ttl_defaults_to_one_day(self):
        kv = AsyncMock()
        store = KeyValueSessionStore(kv)
        await store.set("abc", {"authenticated": True})
        self.assertEqual(kv.set.await_args.kwargs["ttl"], DEFAULT_SESSION_TTL)
        self.assertEqual(DEFAULT_SESSION_TTL, 86400)

    async def test_destroy_is_idempotent(self):
        await self.store.set("abc", {"authenticated": True})
        await self.store.destroy("abc")
        await self.store.destroy("abc")
        self.assertIsNone(await self.store.get("abc"))

    async def test_store_errors_propagate(self):
        kv = AsyncMock()
        kv.get.side_effect = StoreError("down")
        with self.assertRaises(StoreError):
            await KeyValueSessionStore(kv).get("abc")


class SessionTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = KeyValueSessionStore(InMemoryKeyValueStore())
        self.cookie = CookieOptions(max_age=3600)

    async def test_regenerate_drops_old_record(self):
        await self.store.set("old-id", {"authenticated": False})
        session = Session(self.store, self.cookie, session_id="old-id", data={})

        await session.regenerate()
        session.authenticated = True
        await session.save()

        self.assertNotEqual(session.session_id, "old-id")
        self.assertIsNone(await self.store.get("old-id"))
        saved = await self.store.get(session.session_id)
        self.assertTrue(saved["authenticated"])
        self.assertEqual(saved["cookie"]["maxAge"], 3600)
        self.assertTrue(saved["cookie"]["httpOnly"])

    async def test_only_true_counts_as_authenticated(self):
        session = Session(self.store, self.cookie, data={"authenticated": "yes"})
        self.assertFalse(session.authenticated)

    async def test_destroy(self):
        session = Session(self.store, self.cookie)
        session.authenticated = True
        await session.save()
        session_id = session.session_id

        await session.destroy()
        self.assertTrue(session.destroyed)
        self.assertIsNone(session.session_id)
        self.assertIsNone(await self.store.get(session_id))


if __name__ == "__main__":
    unittest.main()
