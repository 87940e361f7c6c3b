import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

from content_backend.assets import AssetKind, UploadPayload
from content_backend.errors import MediaStoreFailure, PayloadTooLarge, UploadRejected
from content_backend.media import MediaStoreAdapter, build_policies, sanitize_filename
from content_backend.storage import InMemoryStorageClient

MB = 1024 * 1024
LIMITS = {AssetKind.IMAGE: 10 * MB, AssetKind.VIDEO: 100 * MB, AssetKind.DOCUMENT: 50 * MB}


class SanitizeFilenameTests(unittest.TestCase):
    def test_whitespace_and_symbols(self):
        self.assertEqual(sanitize_filename("My Photo (1).final.jpg"), "My_Photo_1")

    def test_path_components_are_dropped(self):
        self.assertEqual(sanitize_filename("../../etc/passwd"), "passwd")

    def test_empty_stem_falls_back(self):
        self.assertEqual(sanitize_filename("???.png"), "upload")


class MediaStoreAdapterTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()
        self.adapter = MediaStoreAdapter(
            self.storage, build_policies(LIMITS.get), clock=lambda: 1700000000.0
        )

    def test_store_returns_ref_under_kind_prefix(self):
        ref = self.adapter.store(
            UploadPayload("cat.png", "image/png", b"png-bytes"),
            AssetKind.IMAGE,
            "greenhall-projects",
        )
        self.assertEqual(ref.id, "greenhall-projects/1700000000000-cat")
        self.assertEqual(ref.kind, AssetKind.IMAGE)
        self.assertEqual(
            ref.url, "https://media.example.test/image/greenhall-projects/1700000000000-cat"
        )
        self.assertEqual(
            self.storage.stored_objects["image/greenhall-projects/1700000000000-cat"],
            b"png-bytes",
        )

    def test_ids_do_not_collide_within_one_millisecond(self):
        upload = UploadPayload("cat.png", "image/png", b"x")
        first = self.adapter.store(upload, AssetKind.IMAGE, "ns")
        second = self.adapter.store(upload, AssetKind.IMAGE, "ns")
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(len(self.storage.stored_objects), 2)

    def test_ids_stay_unique_across_threads(self):
        upload = UploadPayload("cat.png", "image/png", b"x")
        with ThreadPoolExecutor(max_workers=8) as pool:
            refs = list(
                pool.map(lambda _: self.adapter.store(upload, AssetKind.IMAGE, "ns"), range(400))
            )
        self.assertEqual(len({ref.id for ref in refs}), 400)
        self.assertEqual(len(self.storage.stored_objects), 400)

    def test_rejects_wrong_mime_family(self):
        with self.assertRaises(UploadRejected) as ctx:
            self.adapter.store(
                UploadPayload("clip.mp4", "video/mp4", b"x"), AssetKind.IMAGE, "ns"
            )
        self.assertEqual(ctx.exception.message, "Only image files are allowed!")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(self.storage.stored_objects, {})

    def test_rejects_unlisted_format(self):
        with self.assertRaises(UploadRejected):
            self.adapter.store(
                UploadPayload("cat.bmp", "image/bmp", b"x"), AssetKind.IMAGE, "ns"
            )

    def test_document_requires_pdf(self):
        ref = self.adapter.store(
            UploadPayload("report.pdf", "application/pdf", b"%PDF"), AssetKind.DOCUMENT, "docs"
        )
        self.assertTrue(ref.url.endswith("/raw/docs/1700000000000-report"))
        with self.assertRaises(UploadRejected):
            self.adapter.store(
                UploadPayload("report.txt", "text/plain", b"x"), AssetKind.DOCUMENT, "docs"
            )

    def test_rejects_oversized_payload(self):
        adapter = MediaStoreAdapter(self.storage, build_policies(lambda kind: 4))
        with self.assertRaises(PayloadTooLarge):
            adapter.store(UploadPayload("cat.png", "image/png", b"12345"), AssetKind.IMAGE, "ns")
        self.assertEqual(self.storage.stored_objects, {})

    def test_provider_failure_on_store_is_fatal(self):
        self.storage.put_bytes = MagicMock(
            side_effect=ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        )
        with self.assertRaises(MediaStoreFailure):
            self.adapter.store(UploadPayload("cat.png", "image/png", b"x"), AssetKind.IMAGE, "ns")

    def test_release_of_unknown_id_succeeds(self):
        result = self.adapter.release("never-stored", AssetKind.IMAGE)
        self.assertTrue(result.ok)

    def test_release_of_empty_id_is_a_no_op(self):
        result = self.adapter.release("", AssetKind.VIDEO)
        self.assertTrue(result.ok)
        self.assertEqual(self.storage.deleted, [])

    def test_release_is_idempotent(self):
        ref = self.adapter.store(UploadPayload("cat.png", "image/png", b"x"), AssetKind.IMAGE, "ns")
        self.assertTrue(self.adapter.release(ref.id, ref.kind).ok)
        self.assertTrue(self.adapter.release(ref.id, ref.kind).ok)
        self.assertEqual(self.storage.stored_objects, {})

    def test_release_is_keyed_on_kind(self):
        ref = self.adapter.store(
            UploadPayload("clip.mp4", "video/mp4", b"x"), AssetKind.VIDEO, "ns/videos"
        )
        self.adapter.release(ref.id, AssetKind.IMAGE)
        self.assertEqual(len(self.storage.stored_objects), 1)
        self.adapter.release(ref.id, AssetKind.VIDEO)
        self.assertEqual(self.storage.stored_objects, {})

    def test_release_failure_is_returned_not_raised(self):
        self.storage.delete = MagicMock(side_effect=RuntimeError("provider down"))
        with self.assertLogs("content_backend.media", level="WARNING"):
            result = self.adapter.release("ns/123-cat", AssetKind.IMAGE)
        self.assertFalse(result.ok)
        self.assertEqual(result.error, "provider down")


if __name__ == "__main__":
    unittest.main()
