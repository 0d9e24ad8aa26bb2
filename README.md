# blobgate

blobgate defines one interface for S3-style object storage, `blobgate.backend.Backend`, and ships several implementations of it. Every implementation offers the same operations: buckets, objects, ACLs and multipart uploads.

- **`blobgate.filesystem.FileSystemBackend`** stores each bucket as a directory under a base directory and each object as a file. Object metadata goes in a `<key>.meta` JSON file next to the object. Multipart parts are staged under `<bucket>/.uploads/<upload id>`. Bucket names and object keys are checked by `validate_bucket_name` and `validate_object_key`, and paths are confined to the base directory, so no request can reach outside it.
- **`blobgate.container_wrapper.ContainerWrapper`** wraps another backend. It maps bucket aliases to real container names and adds a key prefix for each alias. It removes that prefix again from listed keys and common prefixes, and it labels listed objects with the backend name `azure`.
- **`blobgate.multi.MultiBackend`** routes each bucket to one or more named backends. Listings are merged and sorted by key. Reads try each backend in turn. Writes go to the backend registered as `s3` when it serves the bucket, and to the first backend otherwise.
- **`blobgate.multi_simple.MultiBackendSimple`** routes each bucket to exactly one named backend. A bucket with no routing raises `StorageError`.
- **`blobgate.factory.new_backend`** builds a backend from a `StorageConfig`.

## Installation

```
pip install blobgate
```

The package needs nothing beyond the standard library.

## Quick start

```python
import io

from blobgate.factory import FileSystemConfig, StorageConfig, new_backend

backend = new_backend(
    StorageConfig(provider="filesystem", filesystem=FileSystemConfig(base_dir="/tmp/blobs"))
)

backend.create_bucket("photos")
data = b"hello"
backend.put_object("photos", "2024/cat.txt", io.BytesIO(data), len(data), {"Content-Type": "text/plain"})

with backend.get_object("photos", "2024/cat.txt") as obj:
    print(obj.read(), obj.content_type)   # b'hello' text/plain

listing = backend.list_objects("photos", "", "", 1000)
print(listing.common_prefixes)   # ['2024/']
```

`list_objects` groups keys at the `/` delimiter. To use a different delimiter, call `list_objects_with_delimiter`.

`new_backend` accepts two providers, `"filesystem"` and `"multi"`. Any other provider raises `StorageError("unsupported storage provider: ...")`. With `"multi"` the factory wraps the configured filesystem backend in a `MultiBackendSimple` with no bucket routing. For routing to work, build `MultiBackendSimple` or `MultiBackend` yourself.

## Multipart uploads

```python
from blobgate.backend import CompletedPart

upload_id = backend.initiate_multipart_upload("photos", "big.bin", None)
etag1 = backend.upload_part("photos", "big.bin", upload_id, 1, io.BytesIO(b"part one "), 9)
etag2 = backend.upload_part("photos", "big.bin", upload_id, 2, io.BytesIO(b"part two"), 8)
backend.complete_multipart_upload(
    "photos", "big.bin", upload_id,
    [CompletedPart(part_number=1, etag=etag1), CompletedPart(part_number=2, etag=etag2)],
)
```

## Routing across backends

```python
from blobgate.filesystem import FileSystemBackend
from blobgate.multi import MultiBackend

primary = FileSystemBackend("/srv/primary")
archive = FileSystemBackend("/srv/archive")

multi = MultiBackend(
    {"s3": primary, "filesystem": archive},
    {"shared": ["s3", "filesystem"]},
)
merged = multi.list_objects("shared", "", "", 100)
```

Each merged entry records its source in `ObjectInfo.backend`. When the same key exists in several backends, the entry from the backend registered as `s3` is kept. `get_object` stores the name of the backend that served the object under the metadata key `x-backend-source`.

## Errors

Every operation raises `blobgate.backend.StorageError`, or a subclass of it, when it fails. `ObjectNotFoundError` marks a missing object. Invalid bucket names and object keys are rejected before any file is touched.

## What the package does not do

- It has no network clients for cloud object stores. `ContainerWrapper` and `MultiBackend` work with any `Backend` you give them, but the only storage the package provides is `FileSystemBackend`.
- It does not encrypt objects.
- It has no HTTP server and no command-line tool. It is a library only.