"""Match discovered result addresses against the caller's target address list."""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

from listing_sweep.core.models import AddressMatch, ResultRecord

MATCH_THRESHOLD = 0.9
_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def _tokens(text: str) -> Counter:
    return Counter(_TOKEN_RE.findall((text or "").lower()))


def cosine_similarity(left: str, right: str) -> float:
    """Cosine similarity of lower-cased word frequency vectors, in [0, 1]."""
    a = _tokens(left)
    b = _tokens(right)
    if not a or not b:
        return 0.0
    dot = sum(count * b[token] for token, count in a.items())
    norm = math.sqrt(sum(v * v for v in a.values()) * sum(v * v for v in b.values()))
    return min(dot / norm, 1.0) if norm else 0.0


def _street_number(address: str) -> str:
    parts = (address or "").split()
    return parts[0] if parts else ""


def target_from_url(url: str) -> str:
    """Turn a listing URL slug (`.../100-Main-St-Springfield-IL-62701/`) into an address."""
    path = urlparse(url).path.rstrip("/")
    slug = unquote(path.split("/")[-1]) if path else ""
    return slug.replace("-", " ").strip()


def match_result(result: ResultRecord, targets: Sequence[str]) -> Optional[AddressMatch]:
    """Best qualifying target for one result; ties go to the earliest target."""
    street_number = _street_number(result.address)
    if not street_number:
        return None

    best: Optional[AddressMatch] = None
    for index, target in enumerate(targets):
        if _street_number(target) != street_number:
            continue
        score = cosine_similarity(result.address, target)
        if score < MATCH_THRESHOLD:
            continue
        if best is None or score > best.score:
            best = AddressMatch(result=result, candidate_address=target, score=score, candidate_index=index)
    return best


def best_match(results: Sequence[ResultRecord], targets: Sequence[str]) -> Optional[AddressMatch]:
    """The single best-scoring match across a whole page, if any.

    Only one match is kept per page even when several targets match different
    results.
    """
    if not targets:
        return None
    best: Optional[AddressMatch] = None
    for result in results:
        match = match_result(result, targets)
        if match is not None and (best is None or match.score > best.score):
            best = match
    return best


def unmatched_targets(match: Optional[AddressMatch], targets: Sequence[str]) -> List[str]:
    if match is None:
        return list(targets)
    return [target for index, target in enumerate(targets) if index != match.candidate_index]


def build_match_reports(match: Optional[AddressMatch], targets: Sequence[str]) -> List[Dict[str, Any]]:
    """Report records: the match first (if any), then one "no detail match" per other target."""
    records: List[Dict[str, Any]] = []
    if match is not None:
        raw = match.result.raw_payload or {}
        records.append(
            {
                "target": match.candidate_address,
                "zpid": match.result.entity_id,
                "address": match.result.address,
                "detailUrl": match.result.detail_url,
                "zestimate": raw.get("zestimate") or 0,
                "score": round(match.score, 4),
            }
        )
    for target in unmatched_targets(match, targets):
        records.append({"target": target, "detailUrl": "", "zestimate": 0})
    return records
