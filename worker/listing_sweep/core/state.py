"""Snapshot and restore of run state (extracted ids, query credentials) across restarts."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from listing_sweep.core.dedup import DedupStore

logger = logging.getLogger(__name__)


def _read_json(path: Path):
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, ensure_ascii=False)
    tmp.replace(path)


def load_state(path: str) -> Dict[str, object]:
    """Read `{"zpids": [...], "query": {...}}`; a missing file is an empty state."""
    data = _read_json(Path(path))
    if data is None:
        return {"zpids": [], "query": None}
    if isinstance(data, list):
        # bare id list written by older runs
        return {"zpids": [str(v) for v in data], "query": None}
    return {"zpids": [str(v) for v in data.get("zpids") or []], "query": data.get("query")}


def load_entity_ids(path: str) -> List[str]:
    ids = load_state(path)["zpids"]
    if ids:
        logger.info("Restored %d extracted ids from %s", len(ids), path)
    return ids


def load_query_credentials(path: str) -> Optional[Dict[str, str]]:
    query = load_state(path)["query"]
    if isinstance(query, dict) and query.get("queryId") and query.get("clientVersion"):
        return {"queryId": str(query["queryId"]), "clientVersion": str(query["clientVersion"])}
    return None


def save_state(path: str, dedup: DedupStore, query: Optional[Dict[str, str]] = None) -> None:
    snapshot = dedup.snapshot()
    _write_json(Path(path), {"zpids": snapshot, "query": query})
    logger.info("Saved %d extracted ids to %s", len(snapshot), path)
