"""A backend that spreads buckets over several named backends and merges their views."""

from __future__ import annotations

import dataclasses
from typing import BinaryIO, Mapping, Optional, Sequence

from blobgate.backend import (
    ACL,
    Backend,
    BucketInfo,
    CompletedPart,
    ListObjectsResult,
    ListPartsResult,
    ObjectInfo,
    ObjectNotFoundError,
    StorageError,
    StoredObject,
)

PREFERRED_BACKEND = "s3"
SOURCE_METADATA_KEY = "x-backend-source"

_BACKEND_ERRORS = (StorageError, OSError)


def _is_not_found(exc: BaseException) -> bool:
    if isinstance(exc, ObjectNotFoundError):
        return True
    message = str(exc)
    return "not found" in message or "NoSuchKey" in message


class MultiBackend(Backend):
    """Route buckets to one or more named backends.

    ``backends`` maps a backend name to a backend; ``routing`` maps a bucket
    to the names of the backends that hold it. A bucket without routing uses
    the first backend. Reads search every backend holding the bucket, listings
    merge their results, and writes go to the ``s3`` backend when it holds
    the bucket, otherwise to the first one.
    """

    def __init__(
        self,
        backends: Mapping[str, Backend],
        routing: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> None:
        if not backends:
            raise StorageError("no storage backends configured for multi-provider")
        self._backends = dict(backends)
        self._routing = {bucket: list(names) for bucket, names in (routing or {}).items()}

    def backend_name(self, backend: Backend) -> str:
        """Return the name a backend is registered under, or ``unknown``."""
        for name, candidate in self._backends.items():
            if candidate is backend:
                return name
        return "unknown"

    def _backends_for(self, bucket: str) -> list[Backend]:
        found = [
            self._backends[name]
            for name in self._routing.get(bucket, ())
            if name in self._backends
        ]
        if not found:
            found = [next(iter(self._backends.values()))]
        return found

    def _primary_for(self, bucket: str) -> Backend:
        candidates = self._backends_for(bucket)
        if not candidates:
            raise StorageError(f"no backend available for bucket: {bucket}")
        preferred = self._backends.get(PREFERRED_BACKEND)
        if preferred is not None and any(b is preferred for b in candidates):
            return preferred
        return candidates[0]

    def list_buckets(self) -> list[BucketInfo]:
        by_name: dict[str, BucketInfo] = {}
        for backend in self._backends.values():
            try:
                buckets = backend.list_buckets()
            except _BACKEND_ERRORS:
                continue
            for info in buckets:
                by_name.setdefault(info.name, info)
        return sorted(by_name.values(), key=lambda info: info.name)

    def create_bucket(self, bucket: str) -> None:
        self._primary_for(bucket).create_bucket(bucket)

    def delete_bucket(self, bucket: str) -> None:
        last_error: Optional[BaseException] = None
        for backend in self._backends_for(bucket):
            try:
                backend.delete_bucket(bucket)
            except _BACKEND_ERRORS as exc:
                last_error = exc
        if last_error is not None:
            raise last_error

    def bucket_exists(self, bucket: str) -> bool:
        for backend in self._backends_for(bucket):
            try:
                if backend.bucket_exists(bucket):
                    return True
            except _BACKEND_ERRORS:
                continue
        return False

    def _merge(
        self,
        results: list[tuple[str, ListObjectsResult]],
        marker: str,
        max_keys: int,
    ) -> ListObjectsResult:
        merged: dict[str, ObjectInfo] = {}
        prefixes: set[str] = set()
        for name, result in results:
            for item in result.contents:
                if item.key not in merged or name == PREFERRED_BACKEND:
                    merged[item.key] = dataclasses.replace(item, backend=name)
            prefixes.update(result.common_prefixes)

        ordered = sorted(merged.values(), key=lambda item: item.key)
        selected: list[ObjectInfo] = []
        found_marker = marker == ""
        for item in ordered:
            if not found_marker:
                if item.key == marker:
                    found_marker = True
                continue
            selected.append(item)
            if len(selected) >= max_keys:
                break

        truncated = len(selected) == max_keys and len(selected) < len(ordered)
        return ListObjectsResult(
            is_truncated=truncated,
            contents=selected,
            next_marker=selected[-1].key if truncated and selected else "",
            common_prefixes=sorted(prefixes),
        )

    def list_objects(
        self, bucket: str, prefix: str, marker: str, max_keys: int
    ) -> ListObjectsResult:
        candidates = self._backends_for(bucket)
        if len(candidates) == 1:
            return candidates[0].list_objects(bucket, prefix, marker, max_keys)
        results = []
        for backend in candidates:
            try:
                result = backend.list_objects(bucket, prefix, marker, max_keys)
            except _BACKEND_ERRORS:
                continue
            results.append((self.backend_name(backend), result))
        return self._merge(results, marker, max_keys)

    def list_objects_with_delimiter(
        self, bucket: str, prefix: str, marker: str, delimiter: str, max_keys: int
    ) -> ListObjectsResult:
        candidates = self._backends_for(bucket)
        if len(candidates) == 1:
            return candidates[0].list_objects_with_delimiter(
                bucket, prefix, marker, delimiter, max_keys
            )
        results = []
        for backend in candidates:
            try:
                result = backend.list_objects_with_delimiter(
                    bucket, prefix, marker, delimiter, max_keys
                )
            except _BACKEND_ERRORS:
                continue
            results.append((self.backend_name(backend), result))
        return self._merge(results, marker, max_keys)

    def get_object(self, bucket: str, key: str) -> StoredObject:
        for backend in self._backends_for(bucket):
            try:
                obj = backend.get_object(bucket, key)
            except _BACKEND_ERRORS as exc:
                if _is_not_found(exc):
                    continue
                raise
            if obj.metadata is None:
                obj.metadata = {}
            obj.metadata[SOURCE_METADATA_KEY] = self.backend_name(backend)
            return obj
        raise ObjectNotFoundError("object not found in any backend")

    def put_object(
        self,
        bucket: str,
        key: str,
        reader: BinaryIO,
        size: int,
        metadata: Optional[Mapping[str, str]],
    ) -> None:
        self._primary_for(bucket).put_object(bucket, key, reader, size, metadata)

    def delete_object(self, bucket: str, key: str) -> None:
        last_error: Optional[BaseException] = None
        deleted = False
        for backend in self._backends_for(bucket):
            try:
                backend.delete_object(bucket, key)
            except _BACKEND_ERRORS as exc:
                if not _is_not_found(exc):
                    last_error = exc
            else:
                deleted = True
        if not deleted and last_error is not None:
            raise last_error

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        for backend in self._backends_for(bucket):
            try:
                info = backend.head_object(bucket, key)
            except _BACKEND_ERRORS as exc:
                if _is_not_found(exc):
                    continue
                raise
            info.backend = self.backend_name(backend)
            return info
        raise ObjectNotFoundError("object not found in any backend")

    def _holder_of(self, bucket: str, key: str) -> Backend:
        for backend in self._backends_for(bucket):
            try:
                backend.head_object(bucket, key)
            except _BACKEND_ERRORS:
                continue
            return backend
        raise ObjectNotFoundError("object not found in any backend")

    def get_object_acl(self, bucket: str, key: str) -> ACL:
        return self._holder_of(bucket, key).get_object_acl(bucket, key)

    def put_object_acl(self, bucket: str, key: str, acl: ACL) -> None:
        self._holder_of(bucket, key).put_object_acl(bucket, key, acl)

    def initiate_multipart_upload(
        self, bucket: str, key: str, metadata: Optional[Mapping[str, str]]
    ) -> str:
        return self._primary_for(bucket).initiate_multipart_upload(bucket, key, metadata)

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        reader: BinaryIO,
        size: int,
    ) -> str:
        return self._primary_for(bucket).upload_part(
            bucket, key, upload_id, part_number, reader, size
        )

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> None:
        self._primary_for(bucket).complete_multipart_upload(bucket, key, upload_id, parts)

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        self._primary_for(bucket).abort_multipart_upload(bucket, key, upload_id)

    def list_parts(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        max_parts: int,
        part_number_marker: int,
    ) -> ListPartsResult:
        return self._primary_for(bucket).list_parts(
            bucket, key, upload_id, max_parts, part_number_marker
        )