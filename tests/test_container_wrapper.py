import io
from datetime import datetime, timezone

import pytest

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
    StoredObject,
)
from blobgate.container_wrapper import ContainerWrapper


class MemoryBackend(Backend):
    """In-memory store keyed by (container, key)."""

    def __init__(self):
        self.containers = set()
        self.objects = {}
        self.acls = {}
        self.uploads = {}
        self.calls = []

    def list_buckets(self):
        now = datetime.now(timezone.utc)
        return [BucketInfo(name=c, creation_date=now) for c in sorted(self.containers)]

    def create_bucket(self, bucket):
        self.containers.add(bucket)

    def delete_bucket(self, bucket):
        self.containers.discard(bucket)

    def bucket_exists(self, bucket):
        return bucket in self.containers

    def _keys(self, bucket, prefix, marker):
        return sorted(
            k for (b, k) in self.objects
            if b == bucket and k.startswith(prefix) and (not marker or k > marker)
        )

    def _info(self, bucket, key):
        data, metadata = self.objects[(bucket, key)]
        return ObjectInfo(key=key, size=len(data), metadata=dict(metadata))

    def list_objects(self, bucket, prefix, marker, max_keys):
        keys = self._keys(bucket, prefix, marker)
        return ListObjectsResult(
            contents=[self._info(bucket, k) for k in keys[:max_keys]],
            is_truncated=len(keys) > max_keys,
            common_prefixes=[prefix] if prefix else [],
        )

    def list_objects_with_delimiter(self, bucket, prefix, marker, delimiter, max_keys):
        contents, commons = [], []
        for k in self._keys(bucket, prefix, marker):
            rest = k[len(prefix):]
            if delimiter and delimiter in rest:
                common = prefix + rest[: rest.index(delimiter) + len(delimiter)]
                if common not in commons:
                    commons.append(common)
            else:
                contents.append(self._info(bucket, k))
        return ListObjectsResult(contents=contents, common_prefixes=commons)

    def get_object(self, bucket, key):
        if (bucket, key) not in self.objects:
            raise ObjectNotFoundError()
        data, metadata = self.objects[(bucket, key)]
        return StoredObject(body=io.BytesIO(data), size=len(data), metadata=dict(metadata))

    def put_object(self, bucket, key, reader, size, metadata):
        self.objects[(bucket, key)] = (reader.read(), dict(metadata or {}))

    def delete_object(self, bucket, key):
        self.objects.pop((bucket, key), None)

    def head_object(self, bucket, key):
        if (bucket, key) not in self.objects:
            raise ObjectNotFoundError()
        return self._info(bucket, key)

    def get_object_acl(self, bucket, key):
        return self.acls[(bucket, key)]

    def put_object_acl(self, bucket, key, acl):
        self.acls[(bucket, key)] = acl

    def initiate_multipart_upload(self, bucket, key, metadata):
        upload_id = f"{key}-upload"
        self.uploads[upload_id] = (bucket, key, {})
        return upload_id

    def upload_part(self, bucket, key, upload_id, part_number, reader, size):
        self.calls.append(("upload_part", bucket, key))
        self.uploads[upload_id][2][part_number] = reader.read()
        return f'"{part_number}"'

    def complete_multipart_upload(self, bucket, key, upload_id, parts):
        stored = self.uploads.pop(upload_id)[2]
        data = b"".join(stored[p.part_number] for p in parts)
        self.objects[(bucket, key)] = (data, {})

    def abort_multipart_upload(self, bucket, key, upload_id):
        self.calls.append(("abort", bucket, key))
        self.uploads.pop(upload_id, None)

    def list_parts(self, bucket, key, upload_id, max_parts, part_number_marker):
        stored = self.uploads[upload_id][2]
        parts = [Part(part_number=n, size=len(d)) for n, d in sorted(stored.items())
                 if n > part_number_marker][:max_parts]
        return ListPartsResult(bucket=bucket, key=key, upload_id=upload_id, parts=parts)


@pytest.fixture
def store():
    return MemoryBackend()


@pytest.fixture
def wrapper(store):
    return ContainerWrapper(
        store,
        {"logs": "real-logs", "plain": "real-plain"},
        {"logs": "team/", "plain": ""},
    )


@pytest.fixture
def raw(store):
    """A wrapper with no mappings, seeing the store's real names."""
    return ContainerWrapper(store, {}, {})


def test_put_stores_in_real_container_with_prefix(wrapper, raw):
    wrapper.put_object("logs", "a.txt", io.BytesIO(b"hello"), 5, {"x": "y"})
    info = raw.head_object("real-logs", "team/a.txt")
    assert info.size == 5
    assert info.metadata == {"x": "y"}


def test_get_round_trip(wrapper):
    wrapper.put_object("logs", "a.txt", io.BytesIO(b"hello"), 5, None)
    with wrapper.get_object("logs", "a.txt") as obj:
        assert obj.read() == b"hello"


def test_empty_prefix_leaves_key_unchanged(wrapper, raw):
    wrapper.put_object("plain", "b.txt", io.BytesIO(b"x"), 1, None)
    with raw.get_object("real-plain", "b.txt") as obj:
        assert obj.read() == b"x"


def test_unmapped_bucket_passes_through(wrapper, raw):
    wrapper.put_object("other", "c.txt", io.BytesIO(b"x"), 1, None)
    with raw.get_object("other", "c.txt") as obj:
        assert obj.read() == b"x"
    with wrapper.get_object("other", "c.txt") as obj:
        assert obj.read() == b"x"


def test_list_objects_strips_prefix_and_sets_backend(wrapper):
    wrapper.put_object("logs", "one.txt", io.BytesIO(b"1"), 1, None)
    wrapper.put_object("logs", "two.txt", io.BytesIO(b"22"), 2, None)
    result = wrapper.list_objects("logs", "", "", 10)
    assert [o.key for o in result.contents] == ["one.txt", "two.txt"]
    assert {o.backend for o in result.contents} == {"azure"}
    # common prefixes are returned untouched by the plain listing
    assert result.common_prefixes == ["team/"]


def test_list_with_delimiter_strips_common_prefixes(wrapper):
    wrapper.put_object("logs", "dir/x.txt", io.BytesIO(b"1"), 1, None)
    wrapper.put_object("logs", "top.txt", io.BytesIO(b"1"), 1, None)
    result = wrapper.list_objects_with_delimiter("logs", "", "", "/", 10)
    assert [o.key for o in result.contents] == ["top.txt"]
    assert result.common_prefixes == ["dir/"]
    assert result.contents[0].backend == "azure"


def test_head_object_reports_requested_key(wrapper):
    wrapper.put_object("logs", "h.txt", io.BytesIO(b"abc"), 3, None)
    info = wrapper.head_object("logs", "h.txt")
    assert info.key == "h.txt"
    assert info.size == 3


def test_head_missing_object_raises(wrapper):
    with pytest.raises(ObjectNotFoundError):
        wrapper.head_object("logs", "missing.txt")


def test_delete_object(wrapper, raw):
    wrapper.put_object("logs", "d.txt", io.BytesIO(b"x"), 1, None)
    assert wrapper.head_object("logs", "d.txt").size == 1
    wrapper.delete_object("logs", "d.txt")
    with pytest.raises(ObjectNotFoundError):
        wrapper.head_object("logs", "d.txt")
    with pytest.raises(ObjectNotFoundError):
        raw.head_object("real-logs", "team/d.txt")


def test_bucket_lifecycle_uses_container(wrapper, store):
    wrapper.create_bucket("logs")
    assert store.containers == {"real-logs"}
    assert wrapper.bucket_exists("logs") is True
    wrapper.delete_bucket("logs")
    assert wrapper.bucket_exists("logs") is False


def test_list_buckets_returns_aliases(wrapper):
    names = sorted(b.name for b in wrapper.list_buckets())
    assert names == ["logs", "plain"]


def test_acl_round_trip(wrapper, store):
    acl = ACL(owner=Owner(id="o"), grants=[Grant(Grantee(type="CanonicalUser", id="o"), "FULL_CONTROL")])
    wrapper.put_object_acl("logs", "k", acl)
    assert store.acls[("real-logs", "team/k")] is acl
    assert wrapper.get_object_acl("logs", "k") is acl


def test_multipart_flow_uses_full_key(wrapper, store):
    upload_id = wrapper.initiate_multipart_upload("logs", "big.bin", None)
    etag1 = wrapper.upload_part("logs", "big.bin", upload_id, 1, io.BytesIO(b"part 1 "), 7)
    etag2 = wrapper.upload_part("logs", "big.bin", upload_id, 2, io.BytesIO(b"part 2"), 6)
    listed = wrapper.list_parts("logs", "big.bin", upload_id, 10, 0)
    assert [p.part_number for p in listed.parts] == [1, 2]
    assert store.calls[0] == ("upload_part", "real-logs", "team/big.bin")
    wrapper.complete_multipart_upload(
        "logs", "big.bin", upload_id,
        [CompletedPart(1, etag1), CompletedPart(2, etag2)],
    )
    with wrapper.get_object("logs", "big.bin") as obj:
        assert obj.read() == b"part 1 part 2"


def test_abort_multipart_routes_to_container(wrapper, store):
    upload_id = wrapper.initiate_multipart_upload("logs", "k", None)
    assert upload_id == "team/k-upload"
    wrapper.abort_multipart_upload("logs", "k", upload_id)
    assert ("abort", "real-logs", "team/k") in store.calls
    with pytest.raises(KeyError):
        wrapper.list_parts("logs", "k", upload_id, 10, 0)