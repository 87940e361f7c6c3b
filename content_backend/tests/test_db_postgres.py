import unittest
from datetime import datetime, timedelta, timezone

from content_backend.db import InMemoryDbClient, PostgresDbClient
from content_backend.entities import BLOG_POST, PROJECT
from content_backend.errors import NotFound, StoreUnavailable
from content_backend.repository import EntityRepository


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")
        self.db.connect()

    def tearDown(self):
        self.db.close()

    def test_insert_and_find(self):
        self.db.insert("projects", {"_id": "a", "projectName": "A"}, sort_at=1.0)
        self.assertEqual(self.db.find_by_id("projects", "a"), {"_id": "a", "projectName": "A"})
        self.assertIsNone(self.db.find_by_id("blogPosts", "a"))
        self.assertTrue(self.db.is_ready())

    def test_find_all_sorts_descending_with_newest_insert_winning_ties(self):
        self.db.insert("posts", {"_id": "old"}, sort_at=1.0)
        self.db.insert("posts", {"_id": "tie-first"}, sort_at=5.0)
        self.db.insert("posts", {"_id": "tie-second"}, sort_at=5.0)
        self.db.insert("posts", {"_id": "new"}, sort_at=9.0)
        ids = [doc["_id"] for doc in self.db.find_all("posts")]
        self.assertEqual(ids, ["new", "tie-second", "tie-first", "old"])

    def test_update_merges_fields(self):
        self.db.insert("projects", {"_id": "a", "projectName": "A", "pictures": []}, sort_at=1.0)
        updated = self.db.update("projects", "a", {"pictures": [{"url": "u", "publicId": "p"}]})
        self.assertEqual(updated["projectName"], "A")
        self.assertEqual(updated["pictures"], [{"url": "u", "publicId": "p"}])
        self.assertEqual(self.db.find_by_id("projects", "a")["pictures"][0]["publicId"], "p")
        self.assertIsNone(self.db.update("projects", "missing", {"x": 1}))

    def test_delete(self):
        self.db.insert("projects", {"_id": "a"}, sort_at=1.0)
        self.assertTrue(self.db.delete("projects", "a"))
        self.assertFalse(self.db.delete("projects", "a"))
        self.assertEqual(self.db.find_all("projects"), [])


class UnreachableDatabaseTests(unittest.TestCase):
    def test_connect_failure_surfaces_as_store_unavailable(self):
        db = PostgresDbClient("sqlite+pysqlite:////nonexistent-dir/for/tests/content.db")
        self.assertFalse(db.is_ready())
        with self.assertRaises(StoreUnavailable):
            db.connect()


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


class EntityRepositoryTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.clock = FakeClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        self.repository = EntityRepository(self.db, BLOG_POST, clock=self.clock)

    def test_create_assigns_id_and_timestamps(self):
        post = self.repository.create({"title": "T", "content": "C"})
        self.assertEqual(len(post["_id"]), 32)
        self.assertEqual(post["createdAt"], "2024-01-01T00:00:00.000Z")
        self.assertEqual(post["updatedAt"], "2024-01-01T00:00:00.000Z")
        self.assertNotIn("postDate", post)

    def test_list_is_newest_first(self):
        for title in ("first", "second", "third"):
            self.repository.create({"title": title, "content": "C"})
        titles = [post["title"] for post in self.repository.list()]
        self.assertEqual(titles, ["third", "second", "first"])

    def test_update_is_partial_and_keeps_identity(self):
        post = self.repository.create({"title": "T", "content": "C"})
        updated = self.repository.update(post["_id"], {"title": "New", "_id": "hijack"})
        self.assertEqual(updated["_id"], post["_id"])
        self.assertEqual(updated["title"], "New")
        self.assertEqual(updated["content"], "C")
        self.assertEqual(updated["createdAt"], post["createdAt"])
        self.assertNotEqual(updated["updatedAt"], post["updatedAt"])

    def test_missing_ids_raise_not_found(self):
        with self.assertRaises(NotFound):
            self.repository.get("missing")
        with self.assertRaises(NotFound):
            self.repository.update("missing", {"title": "x"})
        with self.assertRaises(NotFound):
            self.repository.delete("missing")

    def test_readiness_is_checked_first(self):
        self.db.ready = False
        with self.assertRaises(StoreUnavailable):
            self.repository.list()
        with self.assertRaises(StoreUnavailable):
            self.repository.get("missing")

    def test_project_sorts_on_upload_date(self):
        repository = EntityRepository(self.db, PROJECT, clock=self.clock)
        older = repository.create(
            {"projectName": "Old", "uploadDate": "2020-01-01T00:00:00.000Z"}
        )
        newer = repository.create({"projectName": "New"})
        self.assertEqual(newer["uploadDate"], newer["createdAt"])
        self.assertEqual(
            [p["_id"] for p in repository.list()], [newer["_id"], older["_id"]]
        )


if __name__ == "__main__":
    unittest.main()
