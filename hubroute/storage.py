"""
Typed object-storage locations.

A location is always an explicit (bucket, key) pair. Strings are parsed once
at the edge with StorageLocation.parse(); nothing downstream guesses a bucket
from a path prefix.
"""

import re

from pydantic import BaseModel, field_validator

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")


class StorageLocation(BaseModel):
    bucket: str
    key: str

    class Config:
        frozen = True

    @field_validator("bucket")
    @classmethod
    def _check_bucket(cls, value: str) -> str:
        if not _BUCKET_RE.match(value):
            raise ValueError(f"invalid bucket name: {value!r}")
        return value

    @field_validator("key")
    @classmethod
    def _check_key(cls, value: str) -> str:
        if not value or value.startswith("/"):
            raise ValueError("key must be a non-empty relative path")
        if any(part in ("", ".", "..") for part in value.split("/")):
            raise ValueError(f"key has an empty or relative segment: {value!r}")
        return value

    @property
    def uri(self) -> str:
        return f"{self.bucket}/{self.key}"

    @classmethod
    def parse(cls, value: str) -> "StorageLocation":
        """Parse "bucket/key/..." — the first segment is always the bucket."""
        bucket, sep, key = value.partition("/")
        if not sep:
            raise ValueError(f"location needs a bucket and a key: {value!r}")
        return cls(bucket=bucket, key=key)
