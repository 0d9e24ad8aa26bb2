"""Core storage types and the abstract interface every backend implements."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Mapping, Optional, Sequence


class StorageError(Exception):
    """Base class for errors raised by storage backends."""


class ObjectNotFoundError(StorageError):
    """Raised when an object or its backing file does not exist."""

    def __init__(self, message: str = "object not found") -> None:
        super().__init__(message)


@dataclass
class BucketInfo:
    """A bucket as reported by a listing."""

    name: str
    creation_date: datetime


@dataclass
class ObjectInfo:
    """Descriptive information about a stored object."""

    key: str
    size: int = 0
    etag: str = ""
    last_modified: Optional[datetime] = None
    storage_class: str = ""
    content_type: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    backend: str = ""


@dataclass
class ListObjectsResult:
    """One page of an object listing."""

    is_truncated: bool = False
    contents: list[ObjectInfo] = field(default_factory=list)
    next_marker: str = ""
    common_prefixes: list[str] = field(default_factory=list)


@dataclass
class StoredObject:
    """An object's body together with its attributes.

    The body is an open binary stream; close it when done, or use the
    object as a context manager.
    """

    body: BinaryIO
    size: int = 0
    content_type: str = ""
    etag: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    last_modified: Optional[datetime] = None

    def read(self) -> bytes:
        """Return the rest of the body."""
        return self.body.read()

    def close(self) -> None:
        """Close the body stream."""
        self.body.close()

    def __enter__(self) -> "StoredObject":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass
class Owner:
    """Owner of an object or bucket."""

    id: str
    display_name: str = ""


@dataclass
class Grantee:
    """The party a permission is granted to."""

    type: str
    id: str = ""
    display_name: str = ""
    uri: str = ""


@dataclass
class Grant:
    """One permission held by one grantee."""

    grantee: Grantee
    permission: str


@dataclass
class ACL:
    """Access control list of an object."""

    owner: Owner
    grants: list[Grant] = field(default_factory=list)


@dataclass
class CompletedPart:
    """A part named when completing a multipart upload."""

    part_number: int
    etag: str = ""


@dataclass
class Part:
    """An uploaded part of a multipart upload."""

    part_number: int
    etag: str = ""
    size: int = 0
    last_modified: Optional[datetime] = None


@dataclass
class ListPartsResult:
    """One page of the parts of a multipart upload."""

    bucket: str
    key: str
    upload_id: str
    part_number_marker: int = 0
    next_part_number_marker: int = 0
    max_parts: int = 0
    is_truncated: bool = False
    parts: list[Part] = field(default_factory=list)


class Backend(abc.ABC):
    """Interface of a bucket/object store."""

    @abc.abstractmethod
    def list_buckets(self) -> list[BucketInfo]:
        """Return all buckets."""

    @abc.abstractmethod
    def create_bucket(self, bucket: str) -> None:
        """Create a bucket."""

    @abc.abstractmethod
    def delete_bucket(self, bucket: str) -> None:
        """Delete a bucket."""

    @abc.abstractmethod
    def bucket_exists(self, bucket: str) -> bool:
        """Tell whether a bucket exists."""

    @abc.abstractmethod
    def list_objects(
        self, bucket: str, prefix: str, marker: str, max_keys: int
    ) -> ListObjectsResult:
        """List objects under a prefix, after a marker."""

    @abc.abstractmethod
    def list_objects_with_delimiter(
        self, bucket: str, prefix: str, marker: str, delimiter: str, max_keys: int
    ) -> ListObjectsResult:
        """List objects, grouping keys into common prefixes at the delimiter."""

    @abc.abstractmethod
    def get_object(self, bucket: str, key: str) -> StoredObject:
        """Open an object for reading."""

    @abc.abstractmethod
    def put_object(
        self,
        bucket: str,
        key: str,
        reader: BinaryIO,
        size: int,
        metadata: Optional[Mapping[str, str]],
    ) -> None:
        """Store an object read from a binary stream."""

    @abc.abstractmethod
    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object."""

    @abc.abstractmethod
    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        """Return an object's attributes without its body."""

    @abc.abstractmethod
    def get_object_acl(self, bucket: str, key: str) -> ACL:
        """Return an object's access control list."""

    @abc.abstractmethod
    def put_object_acl(self, bucket: str, key: str, acl: ACL) -> None:
        """Set an object's access control list."""

    @abc.abstractmethod
    def initiate_multipart_upload(
        self, bucket: str, key: str, metadata: Optional[Mapping[str, str]]
    ) -> str:
        """Start a multipart upload and return its id."""

    @abc.abstractmethod
    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        reader: BinaryIO,
        size: int,
    ) -> str:
        """Store one part and return its ETag."""

    @abc.abstractmethod
    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> None:
        """Assemble the named parts into the final object."""

    @abc.abstractmethod
    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        """Discard a multipart upload."""

    @abc.abstractmethod
    def list_parts(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        max_parts: int,
        part_number_marker: int,
    ) -> ListPartsResult:
        """List the parts of a multipart upload after a part number."""