"""HTTP entrypoint that triggers listing sweeps (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List

from flask import Flask, jsonify, request

from listing_sweep.core.address_matcher import target_from_url
from listing_sweep.core.config import get_settings
from listing_sweep.jobs.run_search import job_from_start_url, run_search_job

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
_executor = ThreadPoolExecutor(max_workers=1)

# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


def _string_list(payload: Dict[str, Any], key: str) -> List[str]:
    value = payload.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list")
    return [str(v).strip() for v in value if str(v).strip()]


@app.post("/search")
def enqueue_search() -> Any:
    """
    Queue a sweep.
    JSON fields: start_urls (list of search URLs) and/or zpids (list of entity ids).
    Optional: targets (addresses), target_urls (listing URLs whose slug is an address).
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    try:
        start_urls = _string_list(payload, "start_urls")
        entity_ids = _string_list(payload, "zpids")
        targets = _string_list(payload, "targets")
        targets += [target_from_url(u) for u in _string_list(payload, "target_urls")]
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    if not start_urls and not entity_ids:
        return jsonify({"error": "start_urls or zpids is required"}), 400

    bad_ids = [i for i in entity_ids if not i.isdigit()]
    if bad_ids:
        return jsonify({"error": f"zpids must be numeric: {', '.join(bad_ids)}"}), 400

    base_url = get_settings().listing_base_url
    for url in start_urls:
        try:
            job_from_start_url(url, base_url)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

    job_args = dict(start_urls=start_urls, entity_ids=entity_ids, targets=targets)
    logger.info("Queueing search sweep: %s", job_args)
    _executor.submit(_run_job_safe, job_args)

    return jsonify({"data": {"status": "queued"}}), 202


# ---------- Internals ----------


def _run_job_safe(job_args: Dict[str, Any]) -> None:
    try:
        run_search_job(**job_args)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Search sweep failed: %s", exc)


def main() -> None:
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)

    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
