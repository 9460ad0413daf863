from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import GatewayError

logger = logging.getLogger(__name__)

SEPARATOR = "/"
UP_ENTRY_NAME = ".."
URI_SCHEME = "s3"


@dataclass(frozen=True)
class Entry:
    name: str
    logical_path: str
    full_path: str
    size_bytes: int = 0
    last_modified: Optional[datetime] = None
    is_container: bool = False
    is_bucket: bool = False
    parent_logical_path: str = ""
    storage_class: Optional[str] = None

    @property
    def is_up(self) -> bool:
        return self.name == UP_ENTRY_NAME


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    last_modified: Optional[datetime]
    storage_class: Optional[str]


def parse_address(full_path: str) -> tuple[str, str]:
    bucket, _, path = full_path.partition(SEPARATOR)
    return bucket, path


def ensure_prefix(prefix: str) -> str:
    if prefix and not prefix.endswith(SEPARATOR):
        return f"{prefix}{SEPARATOR}"
    return prefix


def parent_prefix(prefix: str) -> str:
    trimmed = prefix.rstrip(SEPARATOR)
    if SEPARATOR not in trimmed:
        return ""
    return trimmed.rsplit(SEPARATOR, 1)[0] + SEPARATOR


def join_address(bucket: str, path: str) -> str:
    if not path:
        return bucket
    return f"{bucket}{SEPARATOR}{path}"


def canonical_uri(full_path: str) -> str:
    bucket, path = parse_address(full_path)
    return f"{URI_SCHEME}://{bucket}/{path}"


def display_segment(full_prefix: str, parent: str) -> str:
    name = full_prefix[len(parent) :] if parent else full_prefix
    return name.strip(SEPARATOR)


def bucket_entry(name: str) -> Entry:
    return Entry(
        name=name,
        logical_path=name,
        full_path=name,
        is_container=True,
        is_bucket=True,
    )


def up_entry(bucket: str, prefix: str) -> Entry:
    if not prefix:
        # At bucket root the parent is the bucket list.
        return Entry(
            name=UP_ENTRY_NAME,
            logical_path="",
            full_path="",
            is_container=True,
        )
    parent = parent_prefix(prefix)
    return Entry(
        name=UP_ENTRY_NAME,
        logical_path=parent,
        full_path=join_address(bucket, parent),
        is_container=True,
        parent_logical_path=parent,
    )


def group_listing(
    bucket: str,
    prefix: str,
    prefixes: Iterable[str],
    objects: Iterable[ObjectInfo],
) -> list[Entry]:
    prefix = ensure_prefix(prefix)
    folders: set[str] = set()
    for value in prefixes:
        if not value.startswith(prefix) or value == prefix:
            continue
        segment = value[len(prefix) :].split(SEPARATOR, 1)[0]
        if segment:
            folders.add(f"{prefix}{segment}{SEPARATOR}")

    files: dict[str, ObjectInfo] = {}
    for obj in objects:
        if not obj.key.startswith(prefix) or obj.key == prefix:
            continue
        relative = obj.key[len(prefix) :]
        if SEPARATOR in relative:
            segment = relative.split(SEPARATOR, 1)[0]
            if segment:
                folders.add(f"{prefix}{segment}{SEPARATOR}")
            continue
        files[obj.key] = obj

    entries = [up_entry(bucket, prefix)]
    for folder in sorted(folders):
        entries.append(
            Entry(
                name=display_segment(folder, prefix),
                logical_path=folder,
                full_path=join_address(bucket, folder),
                is_container=True,
                parent_logical_path=prefix,
            )
        )
    for key in sorted(files, key=lambda value: value.lower()):
        obj = files[key]
        entries.append(
            Entry(
                name=display_segment(key, prefix),
                logical_path=key,
                full_path=join_address(bucket, key),
                size_bytes=obj.size,
                last_modified=obj.last_modified,
                parent_logical_path=prefix,
                storage_class=obj.storage_class,
            )
        )
    return entries


class S3Service:
    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Optional[object] = None,
    ) -> None:
        self.profile = profile
        self._region = region
        self._endpoint_url = endpoint_url
        self._client = client if client is not None else self._build_client()

    def _build_client(self):
        try:
            if self.profile is None:
                session = boto3.session.Session()
            else:
                session = boto3.session.Session(profile_name=self.profile)
            kwargs = {}
            if self._region:
                kwargs["region_name"] = self._region
            if self._endpoint_url:
                kwargs["endpoint_url"] = self._endpoint_url
            return session.client("s3", **kwargs)
        except (BotoCoreError, ClientError, ValueError) as exc:
            raise GatewayError(f"failed to create storage client: {exc}") from exc

    async def list_containers(self) -> list[Entry]:
        return await asyncio.to_thread(self._list_containers)

    def _list_containers(self) -> list[Entry]:
        logger.debug("listing buckets for profile %s", self.profile or "default")
        try:
            response = self._client.list_buckets()
        except (BotoCoreError, ClientError) as exc:
            raise GatewayError(f"error listing buckets: {exc}") from exc
        names = [bucket["Name"] for bucket in response.get("Buckets", [])]
        return [bucket_entry(name) for name in names]

    async def list_children(self, bucket: str, prefix: str) -> list[Entry]:
        return await asyncio.to_thread(self._list_children, bucket, prefix)

    def _list_children(self, bucket: str, prefix: str) -> list[Entry]:
        prefix = ensure_prefix(prefix)
        logger.debug("listing s3://%s/%s", bucket, prefix)
        try:
            prefixes, objects = self._list_prefixes_and_objects(bucket, prefix)
        except (BotoCoreError, ClientError) as exc:
            raise GatewayError(f"error listing objects: {exc}") from exc
        return group_listing(bucket, prefix, prefixes, objects)

    def _list_prefixes_and_objects(
        self, bucket: str, prefix: str
    ) -> tuple[list[str], list[ObjectInfo]]:
        prefixes: list[str] = []
        objects: list[ObjectInfo] = []
        continuation: Optional[str] = None
        while True:
            kwargs = {
                "Bucket": bucket,
                "Delimiter": SEPARATOR,
                "Prefix": prefix,
                "MaxKeys": 1000,
            }
            if continuation:
                kwargs["ContinuationToken"] = continuation
            response = self._client.list_objects_v2(**kwargs)
            for entry in response.get("CommonPrefixes", []):
                value = entry.get("Prefix")
                if value:
                    prefixes.append(value)
            for entry in response.get("Contents", []):
                key = entry.get("Key")
                if not key or key.endswith(SEPARATOR):
                    continue
                objects.append(
                    ObjectInfo(
                        key=key,
                        size=int(entry.get("Size", 0)),
                        last_modified=entry.get("LastModified"),
                        storage_class=entry.get("StorageClass"),
                    )
                )
            continuation = response.get("NextContinuationToken")
            if not response.get("IsTruncated") or not continuation:
                break
        return prefixes, objects

    async def list_path(self, path: str) -> list[Entry]:
        if not path:
            return await self.list_containers()
        bucket, prefix = parse_address(path)
        return await self.list_children(bucket, prefix)

    async def fetch_content(self, bucket: str, key: str) -> bytes:
        return await asyncio.to_thread(self._fetch_content, bucket, key)

    def _fetch_content(self, bucket: str, key: str) -> bytes:
        logger.debug("fetching s3://%s/%s", bucket, key)
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise GatewayError(f"error opening object: {exc}") from exc
        body = response.get("Body")
        if body is None:
            return b""
        try:
            return body.read()
        except (BotoCoreError, ClientError, OSError) as exc:
            raise GatewayError(f"error reading object: {exc}") from exc
        finally:
            try:
                body.close()
            except (BotoCoreError, OSError) as exc:
                logger.debug("closing body of s3://%s/%s failed: %s", bucket, key, exc)
