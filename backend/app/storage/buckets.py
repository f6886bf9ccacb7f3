from typing import Dict, Mapping, Optional

from app.storage.base import InvalidBucketError


# Logical category -> storage sub-path (directory under uploads/, path segment in the repo)
DEFAULT_BUCKETS: Dict[str, str] = {
    "budgets": "budget-files",
    "rules": "rules-files",
    "downloads": "download-files",
    "updates": "update-files",
}


def resolve_bucket(bucket: Optional[str], buckets: Mapping[str, str] = DEFAULT_BUCKETS) -> str:
    """Map a logical bucket label to its directory, or raise InvalidBucketError."""
    key = (bucket or "").strip().lower()
    directory = buckets.get(key)
    if not directory:
        raise InvalidBucketError(bucket)
    return directory
