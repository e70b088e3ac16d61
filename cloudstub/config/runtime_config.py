"""Runtime configuration helpers for the stub engines."""
from __future__ import annotations

import os
from typing import Optional

DEFAULT_ID_PREFIX = "stub_"
DEFAULT_TRIGGER_REGION = "us-central1"


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def get_auto_id_prefix() -> str:
    """Prefix for ids allocated by collection.doc() / collection.add()."""
    value = _get_env("FIRESTORE_STUB_ID_PREFIX")
    if value is None:
        return DEFAULT_ID_PREFIX
    return value


def get_trigger_region() -> str:
    return (
        _get_env("FIRESTORE_STUB_TRIGGER_REGION")
        or _get_env("GCP_REGION")
        or _get_env("REGION")
        or DEFAULT_TRIGGER_REGION
    )
