"""S3 integration helpers."""

from .client import Boto3Storage
from .enumerator import SourceEnumerator, parse_bucket_prefix
from .file_matcher import KeyMapper, MatchedObject, PatternMatcher
from .storage import ObjectPage, ObjectRef, PartResult, StorageClient

__all__ = [
    "Boto3Storage",
    "SourceEnumerator",
    "parse_bucket_prefix",
    "KeyMapper",
    "MatchedObject",
    "PatternMatcher",
    "ObjectPage",
    "ObjectRef",
    "PartResult",
    "StorageClient",
]
