import asyncio
import io
import unittest
from datetime import datetime, timezone

from botocore.exceptions import ClientError

from lazybucket.errors import GatewayError
from lazybucket.s3 import (
    ObjectInfo,
    S3Service,
    canonical_uri,
    display_segment,
    ensure_prefix,
    group_listing,
    parent_prefix,
    parse_address,
    up_entry,
)


def _client_error(operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
        operation,
    )


class _StubClient:
    def __init__(self, pages=None, buckets=None, body=b"", fail=None) -> None:
        self.pages = list(pages or [])
        self.buckets = buckets or []
        self.body = body
        self.fail = fail
        self.list_calls: list[dict] = []
        self.get_calls: list[tuple[str, str]] = []

    def list_buckets(self):
        if self.fail == "list_buckets":
            raise _client_error("ListBuckets")
        return {"Buckets": [{"Name": name} for name in self.buckets]}

    def list_objects_v2(self, **kwargs):
        self.list_calls.append(kwargs)
        if self.fail == "list_objects_v2":
            raise _client_error("ListObjectsV2")
        return self.pages.pop(0)

    def get_object(self, Bucket, Key):
        self.get_calls.append((Bucket, Key))
        if self.fail == "get_object":
            raise _client_error("GetObject")
        return {"Body": io.BytesIO(self.body)}


class TestAddressHelpers(unittest.TestCase):
    def test_parse_address(self) -> None:
        self.assertEqual(parse_address("alpha"), ("alpha", ""))
        self.assertEqual(parse_address("alpha/logs/"), ("alpha", "logs/"))
        self.assertEqual(parse_address("alpha/a/b.txt"), ("alpha", "a/b.txt"))

    def test_prefix_helpers(self) -> None:
        self.assertEqual(ensure_prefix(""), "")
        self.assertEqual(ensure_prefix("logs"), "logs/")
        self.assertEqual(ensure_prefix("logs/"), "logs/")
        self.assertEqual(parent_prefix("logs/"), "")
        self.assertEqual(parent_prefix("logs/2024/"), "logs/")

    def test_display_segment(self) -> None:
        self.assertEqual(display_segment("logs/2024/", "logs/"), "2024")
        self.assertEqual(display_segment("logs/", ""), "logs")

    def test_canonical_uri(self) -> None:
        self.assertEqual(canonical_uri("alpha/readme.txt"), "s3://alpha/readme.txt")
        self.assertEqual(
            canonical_uri("alpha/logs/app.log"), "s3://alpha/logs/app.log"
        )

    def test_up_entry_at_bucket_root_returns_to_bucket_list(self) -> None:
        entry = up_entry("alpha", "")
        self.assertTrue(entry.is_up)
        self.assertTrue(entry.is_container)
        self.assertEqual(entry.full_path, "")

    def test_up_entry_inside_prefix(self) -> None:
        entry = up_entry("alpha", "logs/2024/")
        self.assertEqual(entry.full_path, "alpha/logs/")


class TestGroupListing(unittest.TestCase):
    def test_folders_then_files_with_up_first(self) -> None:
        entries = group_listing(
            "alpha",
            "",
            ["logs/"],
            [ObjectInfo("readme.txt", 120, None, "STANDARD")],
        )
        self.assertEqual([entry.name for entry in entries], ["..", "logs", "readme.txt"])
        logs, readme = entries[1], entries[2]
        self.assertTrue(logs.is_container)
        self.assertEqual(logs.full_path, "alpha/logs/")
        self.assertFalse(readme.is_container)
        self.assertEqual(readme.size_bytes, 120)
        self.assertEqual(readme.full_path, "alpha/readme.txt")

    def test_deeper_keys_fold_into_folders(self) -> None:
        entries = group_listing(
            "alpha",
            "data",
            [],
            [
                ObjectInfo("data/", 0, None, None),
                ObjectInfo("data/raw/part-0", 10, None, None),
                ObjectInfo("data/raw/part-1", 10, None, None),
                ObjectInfo("data/B.csv", 3, None, None),
                ObjectInfo("data/a.csv", 2, None, None),
            ],
        )
        self.assertEqual(
            [entry.name for entry in entries], ["..", "raw", "a.csv", "B.csv"]
        )
        self.assertEqual(entries[0].full_path, "alpha")
        self.assertEqual(len({entry.full_path for entry in entries}), len(entries))

    def test_only_one_up_entry(self) -> None:
        entries = group_listing("alpha", "logs/", ["logs/"], [])
        self.assertEqual([entry.name for entry in entries], [".."])


class TestS3Service(unittest.TestCase):
    def test_list_containers(self) -> None:
        service = S3Service(client=_StubClient(buckets=["alpha", "beta"]))
        entries = asyncio.run(service.list_path(""))
        self.assertEqual([entry.name for entry in entries], ["alpha", "beta"])
        self.assertTrue(all(entry.is_bucket and entry.is_container for entry in entries))

    def test_list_children_follows_pagination(self) -> None:
        stamp = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        client = _StubClient(
            pages=[
                {
                    "CommonPrefixes": [{"Prefix": "logs/"}],
                    "Contents": [
                        {"Key": "readme.txt", "Size": 120, "LastModified": stamp}
                    ],
                    "IsTruncated": True,
                    "NextContinuationToken": "token-1",
                },
                {
                    "Contents": [{"Key": "zeta.bin", "Size": 5}],
                    "IsTruncated": False,
                },
            ]
        )
        service = S3Service(client=client)
        entries = asyncio.run(service.list_path("alpha"))

        self.assertEqual(
            [entry.name for entry in entries], ["..", "logs", "readme.txt", "zeta.bin"]
        )
        self.assertEqual(entries[2].last_modified, stamp)
        self.assertEqual(client.list_calls[0]["Prefix"], "")
        self.assertEqual(client.list_calls[0]["Delimiter"], "/")
        self.assertNotIn("ContinuationToken", client.list_calls[0])
        self.assertEqual(client.list_calls[1]["ContinuationToken"], "token-1")

    def test_truncated_page_without_token_stops(self) -> None:
        client = _StubClient(
            pages=[
                {"Contents": [{"Key": "a.txt", "Size": 1}], "IsTruncated": True},
                {"Contents": [{"Key": "a.txt", "Size": 1}], "IsTruncated": False},
            ]
        )
        service = S3Service(client=client)
        entries = asyncio.run(service.list_path("alpha"))
        self.assertEqual(len(client.list_calls), 1)
        self.assertEqual([entry.name for entry in entries], ["..", "a.txt"])

    def test_list_children_normalizes_prefix(self) -> None:
        client = _StubClient(pages=[{"IsTruncated": False}])
        service = S3Service(client=client)
        asyncio.run(service.list_children("alpha", "logs"))
        self.assertEqual(client.list_calls[0]["Prefix"], "logs/")

    def test_listing_errors_become_gateway_errors(self) -> None:
        service = S3Service(client=_StubClient(fail="list_objects_v2"))
        with self.assertRaises(GatewayError) as ctx:
            asyncio.run(service.list_path("alpha/logs/"))
        self.assertIn("error listing objects", str(ctx.exception))

        service = S3Service(client=_StubClient(fail="list_buckets"))
        with self.assertRaises(GatewayError) as ctx:
            asyncio.run(service.list_containers())
        self.assertIn("error listing buckets", str(ctx.exception))

    def test_fetch_content(self) -> None:
        client = _StubClient(body=b"hello\n")
        service = S3Service(client=client)
        data = asyncio.run(service.fetch_content("alpha", "readme.txt"))
        self.assertEqual(data, b"hello\n")
        self.assertEqual(client.get_calls, [("alpha", "readme.txt")])

    def test_fetch_content_error(self) -> None:
        service = S3Service(client=_StubClient(fail="get_object"))
        with self.assertRaises(GatewayError) as ctx:
            asyncio.run(service.fetch_content("alpha", "missing.txt"))
        self.assertIn("error opening object", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
