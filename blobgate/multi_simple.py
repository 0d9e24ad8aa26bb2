"""A backend that sends each bucket to exactly one named backend."""

from __future__ import annotations

from typing import BinaryIO, Mapping, Optional, Sequence

from blobgate.backend import (
    ACL,
    Backend,
    BucketInfo,
    CompletedPart,
    ListObjectsResult,
    ListPartsResult,
    ObjectInfo,
    StorageError,
    StoredObject,
)

_BACKEND_ERRORS = (StorageError, OSError)


class MultiBackendSimple(Backend):
    """Route every bucket to a single backend chosen by name.

    ``backends`` maps a backend name to a backend and ``routing`` maps a
    bucket to the name of the backend that holds it. Operations on a bucket
    without routing raise StorageError.
    """

    def __init__(
        self,
        backends: Mapping[str, Backend],
        routing: Optional[Mapping[str, str]] = None,
    ) -> None:
        if not backends:
            raise StorageError("no storage backends configured for multi-provider")
        self._backends = dict(backends)
        self._routing = dict(routing or {})

    def _backend_for(self, bucket: str) -> Backend:
        name = self._routing.get(bucket)
        if name is not None:
            backend = self._backends.get(name)
            if backend is not None:
                return backend
        raise StorageError(f"no backend found for bucket: {bucket}")

    def list_buckets(self) -> list[BucketInfo]:
        buckets: list[BucketInfo] = []
        for backend in self._backends.values():
            try:
                buckets.extend(backend.list_buckets())
            except _BACKEND_ERRORS:
                continue
        return buckets

    def create_bucket(self, bucket: str) -> None:
        self._backend_for(bucket).create_bucket(bucket)

    def delete_bucket(self, bucket: str) -> None:
        self._backend_for(bucket).delete_bucket(bucket)

    def bucket_exists(self, bucket: str) -> bool:
        return self._backend_for(bucket).bucket_exists(bucket)

    def list_objects(
        self, bucket: str, prefix: str, marker: str, max_keys: int
    ) -> ListObjectsResult:
        return self._backend_for(bucket).list_objects(bucket, prefix, marker, max_keys)

    def list_objects_with_delimiter(
        self, bucket: str, prefix: str, marker: str, delimiter: str, max_keys: int
    ) -> ListObjectsResult:
        return self._backend_for(bucket).list_objects_with_delimiter(
            bucket, prefix, marker, delimiter, max_keys
        )

    def get_object(self, bucket: str, key: str) -> StoredObject:
        return self._backend_for(bucket).get_object(bucket, key)

    def put_object(
        self,
        bucket: str,
        key: str,
        reader: BinaryIO,
        size: int,
        metadata: Optional[Mapping[str, str]],
    ) -> None:
        self._backend_for(bucket).put_object(bucket, key, reader, size, metadata)

    def delete_object(self, bucket: str, key: str) -> None:
        self._backend_for(bucket).delete_object(bucket, key)

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        return self._backend_for(bucket).head_object(bucket, key)

    def get_object_acl(self, bucket: str, key: str) -> ACL:
        return self._backend_for(bucket).get_object_acl(bucket, key)

    def put_object_acl(self, bucket: str, key: str, acl: ACL) -> None:
        self._backend_for(bucket).put_object_acl(bucket, key, acl)

    def initiate_multipart_upload(
        self, bucket: str, key: str, metadata: Optional[Mapping[str, str]]
    ) -> str:
        return self._backend_for(bucket).initiate_multipart_upload(bucket, key, metadata)

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        reader: BinaryIO,
        size: int,
    ) -> str:
        return self._backend_for(bucket).upload_part(
            bucket, key, upload_id, part_number, reader, size
        )

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> None:
        self._backend_for(bucket).complete_multipart_upload(bucket, key, upload_id, parts)

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        self._backend_for(bucket).abort_multipart_upload(bucket, key, upload_id)

    def list_parts(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        max_parts: int,
        part_number_marker: int,
    ) -> ListPartsResult:
        return self._backend_for(bucket).list_parts(
            bucket, key, upload_id, max_parts, part_number_marker
        )