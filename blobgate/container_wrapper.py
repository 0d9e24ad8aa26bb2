"""A backend wrapper that maps bucket aliases to containers and key prefixes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import BinaryIO, Mapping, Optional, Sequence

from blobgate.backend import (
    ACL,
    Backend,
    BucketInfo,
    CompletedPart,
    ListObjectsResult,
    ListPartsResult,
    ObjectInfo,
    StoredObject,
)

BACKEND_LABEL = "azure"


class ContainerWrapper(Backend):
    """Expose containers of a blob store under bucket aliases.

    ``container_map`` maps a bucket alias to its real container name and
    ``prefix_map`` maps an alias to a key prefix inside that container.
    Buckets without a mapping pass through unchanged.
    """

    def __init__(
        self,
        backend: Backend,
        container_map: Mapping[str, str],
        prefix_map: Mapping[str, str],
    ) -> None:
        self._backend = backend
        self._container_map = dict(container_map)
        self._reverse_map = {real: alias for alias, real in self._container_map.items()}
        self._prefix_map = dict(prefix_map)

    def _container(self, bucket: str) -> str:
        return self._container_map.get(bucket, bucket)

    def _bucket_for(self, container: str) -> str:
        return self._reverse_map.get(container, container)

    def _add_prefix(self, bucket: str, key: str) -> str:
        prefix = self._prefix_map.get(bucket, "")
        return prefix + key if prefix else key

    def _remove_prefix(self, bucket: str, key: str) -> str:
        prefix = self._prefix_map.get(bucket, "")
        return key.removeprefix(prefix) if prefix else key

    def list_buckets(self) -> list[BucketInfo]:
        now = datetime.now(timezone.utc)
        return [BucketInfo(name=alias, creation_date=now) for alias in self._container_map]

    def create_bucket(self, bucket: str) -> None:
        self._backend.create_bucket(self._container(bucket))

    def delete_bucket(self, bucket: str) -> None:
        self._backend.delete_bucket(self._container(bucket))

    def bucket_exists(self, bucket: str) -> bool:
        return self._backend.bucket_exists(self._container(bucket))

    def _relabel(self, bucket: str, result: ListObjectsResult) -> None:
        for item in result.contents:
            item.key = self._remove_prefix(bucket, item.key)
            item.backend = BACKEND_LABEL

    def list_objects(
        self, bucket: str, prefix: str, marker: str, max_keys: int
    ) -> ListObjectsResult:
        result = self._backend.list_objects(
            self._container(bucket), self._add_prefix(bucket, prefix), marker, max_keys
        )
        self._relabel(bucket, result)
        return result

    def list_objects_with_delimiter(
        self, bucket: str, prefix: str, marker: str, delimiter: str, max_keys: int
    ) -> ListObjectsResult:
        result = self._backend.list_objects_with_delimiter(
            self._container(bucket),
            self._add_prefix(bucket, prefix),
            marker,
            delimiter,
            max_keys,
        )
        self._relabel(bucket, result)
        result.common_prefixes = [
            self._remove_prefix(bucket, common) for common in result.common_prefixes
        ]
        return result

    def get_object(self, bucket: str, key: str) -> StoredObject:
        return self._backend.get_object(self._container(bucket), self._add_prefix(bucket, key))

    def put_object(
        self,
        bucket: str,
        key: str,
        reader: BinaryIO,
        size: int,
        metadata: Optional[Mapping[str, str]],
    ) -> None:
        self._backend.put_object(
            self._container(bucket), self._add_prefix(bucket, key), reader, size, metadata
        )

    def delete_object(self, bucket: str, key: str) -> None:
        self._backend.delete_object(self._container(bucket), self._add_prefix(bucket, key))

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        info = self._backend.head_object(self._container(bucket), self._add_prefix(bucket, key))
        info.key = key
        return info

    def get_object_acl(self, bucket: str, key: str) -> ACL:
        return self._backend.get_object_acl(
            self._container(bucket), self._add_prefix(bucket, key)
        )

    def put_object_acl(self, bucket: str, key: str, acl: ACL) -> None:
        self._backend.put_object_acl(
            self._container(bucket), self._add_prefix(bucket, key), acl
        )

    def initiate_multipart_upload(
        self, bucket: str, key: str, metadata: Optional[Mapping[str, str]]
    ) -> str:
        return self._backend.initiate_multipart_upload(
            self._container(bucket), self._add_prefix(bucket, key), metadata
        )

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        reader: BinaryIO,
        size: int,
    ) -> str:
        return self._backend.upload_part(
            self._container(bucket),
            self._add_prefix(bucket, key),
            upload_id,
            part_number,
            reader,
            size,
        )

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> None:
        self._backend.complete_multipart_upload(
            self._container(bucket), self._add_prefix(bucket, key), upload_id, parts
        )

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        self._backend.abort_multipart_upload(
            self._container(bucket), self._add_prefix(bucket, key), upload_id
        )

    def list_parts(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        max_parts: int,
        part_number_marker: int,
    ) -> ListPartsResult:
        return self._backend.list_parts(
            self._container(bucket),
            self._add_prefix(bucket, key),
            upload_id,
            max_parts,
            part_number_marker,
        )