"""Remote storage adapters."""

from cardsync.adapters.storage.filesystem import FilesystemStorage
from cardsync.adapters.storage.s3 import S3Storage


__all__ = ["FilesystemStorage", "S3Storage"]
