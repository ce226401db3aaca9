from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from .utils import read_yaml

DEFAULT_CONFIG = "config/config.yaml"

# S3 DeleteObjects accepts at most this many keys per request
MAX_DELETE_BATCH = 1000


@dataclass(frozen=True)
class Backend:
    name: str
    acl: Optional[str] = None
    endpoint_url: Optional[str] = None


BACKENDS: Dict[str, Backend] = {
    "s3": Backend("s3"),
    # DigitalOcean Spaces serves objects publicly only with an explicit ACL
    "space": Backend("space", acl="public-read"),
}


def resolve_backend(name: Optional[str], endpoint: Optional[str] = None) -> Backend:
    key = (name or "s3").lower()
    if key not in BACKENDS:
        raise ValueError(f"Unknown backend '{name}', expected one of: {', '.join(sorted(BACKENDS))}")
    backend = BACKENDS[key]
    if endpoint:
        url = endpoint if "://" in endpoint else f"https://{endpoint}"
        backend = replace(backend, endpoint_url=url)
    return backend


@dataclass(frozen=True)
class SyncOptions:
    """Knobs for one sync invocation, passed explicitly into the core."""

    max_workers: int = 8
    max_attempts: int = 5
    backoff_base: float = 0.5
    backoff_max: float = 20.0
    page_size: int = 1000
    delete_batch_size: int = MAX_DELETE_BATCH
    acl: Optional[str] = None
    dry_run: bool = False
    progress: bool = False

    def __post_init__(self):
        for name in ("max_workers", "max_attempts", "page_size", "delete_batch_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise ValueError(f"{name} must be >= 1")

    @property
    def effective_delete_batch(self) -> int:
        return min(self.delete_batch_size, MAX_DELETE_BATCH)

    @property
    def copy_extra_args(self) -> Optional[Dict[str, Any]]:
        return {"ACL": self.acl} if self.acl else None

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]], **overrides: Any) -> "SyncOptions":
        """Build options from a config section; unknown keys are ignored, None overrides are skipped."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in (data or {}).items() if k in known}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def load_config(config_path: Optional[str] = None) -> dict:
    """
    Load YAML config if present, otherwise return {}.
    Only an explicitly requested file has to exist.
    """
    path = config_path or DEFAULT_CONFIG
    try:
        cfg = read_yaml(path)
    except FileNotFoundError:
        if config_path:
            raise
        return {}
    return cfg or {}
