"""A backend that keeps buckets as directories and objects as files."""

from __future__ import annotations

import json
import os
import re
import shutil
import stat
import time
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, Mapping, Optional, Sequence

from blobgate.backend import (
    ACL,
    Backend,
    BucketInfo,
    CompletedPart,
    Grant,
    Grantee,
    ListObjectsResult,
    ListPartsResult,
    ObjectInfo,
    ObjectNotFoundError,
    Owner,
    Part,
    StorageError,
    StoredObject,
)

_BUFFER_SIZE = 64 * 1024
_DEFAULT_CONTENT_TYPE = "application/octet-stream"
_META_SUFFIX = ".meta"
_UPLOADS_DIR = ".uploads"
_PART_PATTERN = re.compile(r"part-([+-]?\d+)")
_DIR_MODE = 0o750
_META_MODE = 0o600


def validate_bucket_name(bucket: str) -> None:
    """Raise StorageError if a bucket name could escape its directory."""
    if not bucket:
        raise StorageError("bucket name cannot be empty")
    if ".." in bucket:
        raise StorageError("bucket name cannot contain '..'")
    if "/" in bucket or "\\" in bucket:
        raise StorageError("bucket name cannot contain path separators")
    if bucket == ".":
        raise StorageError("bucket name cannot be '.'")


def validate_object_key(key: str) -> None:
    """Raise StorageError if an object key could escape its bucket."""
    if not key:
        raise StorageError("object key cannot be empty")
    if ".." in key:
        raise StorageError("object key cannot contain '..'")
    if key.startswith("/"):
        raise StorageError("object key cannot start with '/'")
    if "\\" in key:
        raise StorageError("object key cannot contain backslashes")


def _walk(root: str) -> Iterator[tuple[str, os.stat_result]]:
    """Yield every path under root, root first, entries in name order."""
    try:
        info = os.lstat(root)
    except OSError:
        return
    yield root, info
    if not stat.S_ISDIR(info.st_mode):
        return
    try:
        names = sorted(os.listdir(root))
    except OSError:
        return
    for name in names:
        yield from _walk(os.path.join(root, name))


def _modified(info: os.stat_result) -> datetime:
    return datetime.fromtimestamp(info.st_mtime_ns / 1e9, tz=timezone.utc)


def _etag(info: os.stat_result) -> str:
    return f'"{info.st_mtime_ns:x}"'


def _load_metadata(object_path: str) -> dict[str, str]:
    try:
        with open(object_path + _META_SUFFIX, "rb") as handle:
            loaded = json.load(handle)
    except (OSError, ValueError):
        return {}
    if not isinstance(loaded, dict):
        return {}
    return {k: v for k, v in loaded.items() if isinstance(v, str)}


def _content_type(metadata: Mapping[str, str]) -> str:
    return metadata.get("Content-Type") or _DEFAULT_CONTENT_TYPE


class FileSystemBackend(Backend):
    """Store buckets as directories below a base directory.

    Object metadata is kept beside each object in a ``<key>.meta`` JSON file;
    multipart uploads are staged under ``<bucket>/.uploads/<upload id>``.
    """

    def __init__(self, base_dir: str | os.PathLike[str]) -> None:
        base = os.fspath(base_dir)
        if not base:
            raise StorageError("base directory is required for filesystem backend")
        try:
            os.makedirs(base, mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to create base directory: {exc}") from exc
        self._base_dir = base

    def _confine(self, path: str) -> str:
        clean = os.path.normpath(path)
        base = os.path.normpath(self._base_dir)
        if not clean.startswith(base + os.sep) and clean != base:
            raise StorageError("path traversal detected")
        return clean

    def _bucket_path(self, bucket: str) -> str:
        validate_bucket_name(bucket)
        return self._confine(os.path.join(self._base_dir, bucket))

    def _object_path(self, bucket: str, key: str) -> str:
        try:
            validate_bucket_name(bucket)
        except StorageError as exc:
            raise StorageError(f"invalid bucket name: {exc}") from exc
        try:
            validate_object_key(key)
        except StorageError as exc:
            raise StorageError(f"invalid object key: {exc}") from exc
        return self._confine(os.path.join(self._base_dir, bucket, key))

    def _upload_path(self, bucket: str, upload_id: str) -> str:
        try:
            validate_bucket_name(bucket)
        except StorageError as exc:
            raise StorageError(f"invalid bucket name: {exc}") from exc
        try:
            validate_bucket_name(upload_id)
        except StorageError as exc:
            raise StorageError(f"invalid upload ID: {exc}") from exc
        return self._confine(os.path.join(self._base_dir, bucket, _UPLOADS_DIR, upload_id))

    def _checked_bucket_path(self, bucket: str) -> str:
        try:
            return self._bucket_path(bucket)
        except StorageError as exc:
            raise StorageError(f"invalid bucket name: {exc}") from exc

    def _checked_object_path(self, bucket: str, key: str) -> str:
        try:
            return self._object_path(bucket, key)
        except StorageError as exc:
            raise StorageError(f"invalid path parameters: {exc}") from exc

    def _checked_upload_path(self, bucket: str, upload_id: str) -> str:
        try:
            return self._upload_path(bucket, upload_id)
        except StorageError as exc:
            raise StorageError(f"invalid path parameters: {exc}") from exc

    def list_buckets(self) -> list[BucketInfo]:
        try:
            entries = sorted(os.scandir(self._base_dir), key=lambda entry: entry.name)
        except OSError as exc:
            raise StorageError(f"failed to read base directory: {exc}") from exc
        buckets = []
        for entry in entries:
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                info = entry.stat(follow_symlinks=False)
            except OSError:
                continue
            buckets.append(BucketInfo(name=entry.name, creation_date=_modified(info)))
        return buckets

    def create_bucket(self, bucket: str) -> None:
        path = self._checked_bucket_path(bucket)
        try:
            os.makedirs(path, mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to create bucket: {exc}") from exc

    def delete_bucket(self, bucket: str) -> None:
        path = self._checked_bucket_path(bucket)
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"failed to delete bucket: {exc}") from exc

    def bucket_exists(self, bucket: str) -> bool:
        path = self._checked_bucket_path(bucket)
        try:
            info = os.stat(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(str(exc)) from exc
        return stat.S_ISDIR(info.st_mode)

    def list_objects(
        self, bucket: str, prefix: str, marker: str, max_keys: int
    ) -> ListObjectsResult:
        return self.list_objects_with_delimiter(bucket, prefix, marker, "/", max_keys)

    def list_objects_with_delimiter(
        self, bucket: str, prefix: str, marker: str, delimiter: str, max_keys: int
    ) -> ListObjectsResult:
        bucket_path = self._checked_bucket_path(bucket)
        result = ListObjectsResult()
        seen_prefixes: set[str] = set()
        count = 0

        for path, info in _walk(bucket_path):
            if count >= max_keys:
                break
            key = os.path.relpath(path, bucket_path).replace(os.sep, "/")
            if key == ".":
                continue
            if prefix and not key.startswith(prefix):
                continue
            if marker and key <= marker:
                continue

            if delimiter:
                rest = key[len(prefix):]
                index = rest.find(delimiter)
                if index >= 0:
                    common = prefix + rest[: index + len(delimiter)]
                    if common not in seen_prefixes:
                        seen_prefixes.add(common)
                        result.common_prefixes.append(common)
                        count += 1
                    continue

            if stat.S_ISDIR(info.st_mode) or key.endswith(_META_SUFFIX):
                continue
            metadata = _load_metadata(os.path.join(bucket_path, key))
            result.contents.append(
                ObjectInfo(
                    key=key,
                    size=info.st_size,
                    etag=_etag(info),
                    last_modified=_modified(info),
                    content_type=_content_type(metadata),
                    metadata=metadata,
                )
            )
            count += 1

        result.is_truncated = count >= max_keys
        return result

    def get_object(self, bucket: str, key: str) -> StoredObject:
        path = self._checked_object_path(bucket, key)
        try:
            info = os.stat(path)
        except OSError as exc:
            raise ObjectNotFoundError(f"object not found: {exc}") from exc
        try:
            body = open(path, "rb")
        except OSError as exc:
            raise StorageError(f"failed to open object: {exc}") from exc
        metadata = _load_metadata(path)
        return StoredObject(
            body=body,
            size=info.st_size,
            content_type=_content_type(metadata),
            etag=_etag(info),
            metadata=metadata,
            last_modified=_modified(info),
        )

    def put_object(
        self,
        bucket: str,
        key: str,
        reader: BinaryIO,
        size: int,
        metadata: Optional[Mapping[str, str]],
    ) -> None:
        path = self._checked_object_path(bucket, key)
        try:
            os.makedirs(os.path.dirname(path), mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to create object directory: {exc}") from exc
        try:
            handle = open(path, "wb")
        except OSError as exc:
            raise StorageError(f"failed to create object file: {exc}") from exc
        with handle:
            try:
                shutil.copyfileobj(reader, handle, _BUFFER_SIZE)
            except OSError as exc:
                raise StorageError(f"failed to write object data: {exc}") from exc

        if metadata:
            try:
                encoded = json.dumps(dict(metadata)).encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise StorageError(f"failed to marshal metadata: {exc}") from exc
            try:
                fd = os.open(
                    path + _META_SUFFIX,
                    os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                    _META_MODE,
                )
                with os.fdopen(fd, "wb") as meta_handle:
                    meta_handle.write(encoded)
            except OSError as exc:
                raise StorageError(f"failed to write metadata file: {exc}") from exc

    def delete_object(self, bucket: str, key: str) -> None:
        path = self._checked_object_path(bucket, key)
        failure: Optional[OSError] = None
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                os.rmdir(path)
            else:
                os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            failure = exc
        try:
            os.remove(path + _META_SUFFIX)
        except OSError:
            pass
        if failure is not None:
            raise StorageError(f"failed to delete object: {failure}") from failure

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        path = self._checked_object_path(bucket, key)
        try:
            info = os.stat(path)
        except OSError as exc:
            raise ObjectNotFoundError(f"object not found: {exc}") from exc
        metadata = _load_metadata(path)
        return ObjectInfo(
            key=key,
            size=info.st_size,
            etag=_etag(info),
            last_modified=_modified(info),
            content_type=_content_type(metadata),
            metadata=metadata,
        )

    def get_object_acl(self, bucket: str, key: str) -> ACL:
        return ACL(
            owner=Owner(id="filesystem", display_name="FileSystem"),
            grants=[
                Grant(
                    grantee=Grantee(
                        type="CanonicalUser", id="filesystem", display_name="FileSystem"
                    ),
                    permission="FULL_CONTROL",
                )
            ],
        )

    def put_object_acl(self, bucket: str, key: str, acl: ACL) -> None:
        """Accept and ignore the ACL; files carry no per-object grants."""

    def initiate_multipart_upload(
        self, bucket: str, key: str, metadata: Optional[Mapping[str, str]]
    ) -> str:
        upload_id = f"{key}-{time.time_ns()}"
        upload_dir = self._checked_upload_path(bucket, upload_id)
        try:
            os.makedirs(upload_dir, mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to create upload directory: {exc}") from exc
        return upload_id

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        reader: BinaryIO,
        size: int,
    ) -> str:
        upload_dir = self._checked_upload_path(bucket, upload_id)
        part_path = os.path.join(upload_dir, f"part-{part_number}")
        try:
            handle = open(part_path, "wb")
        except OSError as exc:
            raise StorageError(f"failed to create part file: {exc}") from exc
        with handle:
            try:
                shutil.copyfileobj(reader, handle, _BUFFER_SIZE)
            except OSError as exc:
                raise StorageError(f"failed to write part data: {exc}") from exc
        return f'"{part_number}"'

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> None:
        try:
            upload_dir = self._upload_path(bucket, upload_id)
        except StorageError as exc:
            raise StorageError(f"invalid upload path parameters: {exc}") from exc
        try:
            object_path = self._object_path(bucket, key)
        except StorageError as exc:
            raise StorageError(f"invalid object path parameters: {exc}") from exc

        try:
            os.makedirs(os.path.dirname(object_path), mode=_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"failed to create object directory: {exc}") from exc
        try:
            target = open(object_path, "wb")
        except OSError as exc:
            raise StorageError(f"failed to create object file: {exc}") from exc

        with target:
            for part in parts:
                part_path = os.path.join(upload_dir, f"part-{part.part_number}")
                try:
                    source = open(part_path, "rb")
                except OSError as exc:
                    raise StorageError(
                        f"failed to open part {part.part_number}: {exc}"
                    ) from exc
                with source:
                    try:
                        shutil.copyfileobj(source, target, _BUFFER_SIZE)
                    except OSError as exc:
                        raise StorageError(
                            f"failed to copy part {part.part_number}: {exc}"
                        ) from exc

        shutil.rmtree(upload_dir, ignore_errors=True)

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        upload_dir = self._checked_upload_path(bucket, upload_id)
        try:
            shutil.rmtree(upload_dir)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"failed to remove upload directory: {exc}") from exc

    def list_parts(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        max_parts: int,
        part_number_marker: int,
    ) -> ListPartsResult:
        upload_dir = self._checked_upload_path(bucket, upload_id)
        try:
            entries = sorted(os.scandir(upload_dir), key=lambda entry: entry.name)
        except OSError as exc:
            raise StorageError(f"failed to read upload directory: {exc}") from exc

        result = ListPartsResult(bucket=bucket, key=key, upload_id=upload_id)
        count = 0
        for entry in entries:
            if count >= max_parts:
                break
            match = _PART_PATTERN.match(entry.name)
            if match is None:
                continue
            part_number = int(match.group(1))
            if part_number <= part_number_marker:
                continue
            try:
                info = entry.stat(follow_symlinks=False)
            except OSError:
                continue
            result.parts.append(
                Part(
                    part_number=part_number,
                    etag=f'"{part_number}"',
                    size=info.st_size,
                    last_modified=_modified(info),
                )
            )
            count += 1

        result.is_truncated = count >= max_parts
        return result