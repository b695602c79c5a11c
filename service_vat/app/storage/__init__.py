"""
Object store package.

Key-value access to the bucket shared by the cache, the usage meter and
the audit log. Only ``get`` and ``put`` are used; there is no locking,
listing or conditional write.
"""

from .blob_store import BlobStore, InMemoryBlobStore, S3BlobStore, S3Config
from .json_store import AuditLog, read_json, write_json

__all__ = [
    "BlobStore",
    "InMemoryBlobStore",
    "S3BlobStore",
    "S3Config",
    "AuditLog",
    "read_json",
    "write_json",
]
