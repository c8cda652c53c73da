"""
Object storage.
"""

from mediamirror.storage.s3 import IMMUTABLE_CACHE_CONTROL, S3Storage

__all__ = ["IMMUTABLE_CACHE_CONTROL", "S3Storage"]
