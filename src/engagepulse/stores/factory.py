"""Store selection from configuration."""

from __future__ import annotations

import os
from typing import Any, Dict

from engagepulse.config import resolve_path
from engagepulse.stores.files import JsonDirectoryStore
from engagepulse.stores.memory import InMemoryStore
from engagepulse.stores.rest import RestStore


def build_store(cfg: Dict[str, Any]) -> JsonDirectoryStore | RestStore | InMemoryStore:
    store_cfg = cfg.get("store") or {}
    backend = str(store_cfg.get("backend", "files")).lower()
    if backend == "files":
        return JsonDirectoryStore(resolve_path(store_cfg.get("data_dir", "data")))
    if backend == "rest":
        endpoint = store_cfg.get("endpoint")
        if not endpoint:
            raise ValueError("store.endpoint is required for the rest backend.")
        token_env = store_cfg.get("token_env", "ENGAGEPULSE_API_TOKEN")
        return RestStore(
            endpoint=endpoint,
            timeout_seconds=int(store_cfg.get("timeout_seconds", 30)),
            token=os.getenv(token_env) or None,
        )
    if backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unsupported store backend: {backend}")
