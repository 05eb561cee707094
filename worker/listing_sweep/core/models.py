"""Core data models shared by the search and extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

LABEL_QUERY = "QUERY"
LABEL_DETAIL = "DETAIL"
LABEL_IDS = "IDS"


@dataclass(frozen=True, slots=True)
class Viewport:
    """Geographic rectangle plus the map zoom it was requested at."""

    north: float
    south: float
    east: float
    west: float
    zoom_level: int

    def quadrants(self) -> List[Viewport]:
        """Split into four equal rectangles, one zoom level deeper.

        Ordered NW, NE, SW, SE. Together they cover exactly this viewport.
        """
        mid_lat = (self.north + self.south) / 2
        mid_lng = (self.east + self.west) / 2
        zoom = self.zoom_level + 1
        return [
            Viewport(north=self.north, south=mid_lat, east=mid_lng, west=self.west, zoom_level=zoom),
            Viewport(north=self.north, south=mid_lat, east=self.east, west=mid_lng, zoom_level=zoom),
            Viewport(north=mid_lat, south=self.south, east=mid_lng, west=self.west, zoom_level=zoom),
            Viewport(north=mid_lat, south=self.south, east=self.east, west=mid_lng, zoom_level=zoom),
        ]

    def to_map_bounds(self) -> Dict[str, Any]:
        return {
            "north": self.north,
            "south": self.south,
            "east": self.east,
            "west": self.west,
            "mapZoom": self.zoom_level,
        }

    @classmethod
    def from_map_bounds(cls, bounds: Dict[str, Any], zoom: Optional[int] = None) -> Viewport:
        if zoom is None:
            zoom = bounds.get("mapZoom")
        return cls(
            north=float(bounds["north"]),
            south=float(bounds["south"]),
            east=float(bounds["east"]),
            west=float(bounds["west"]),
            zoom_level=int(zoom if zoom is not None else 0),
        )


@dataclass(frozen=True)
class QueryState:
    """Viewport plus filters (and optionally a page number) sent upstream."""

    viewport: Viewport
    filters: Dict[str, Any] = field(default_factory=dict)
    pagination_page: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def page_number(self) -> int:
        return self.pagination_page or 1

    def with_viewport(self, viewport: Viewport) -> QueryState:
        return replace(self, viewport=viewport, pagination_page=None)

    def with_page(self, page_number: int) -> QueryState:
        return replace(self, pagination_page=page_number)

    def to_search_query_state(self) -> Dict[str, Any]:
        """Serialize into the upstream `searchQueryState` JSON shape."""
        data: Dict[str, Any] = dict(self.extra)
        data["mapBounds"] = self.viewport.to_map_bounds()
        data["mapZoom"] = self.viewport.zoom_level
        data["filterState"] = dict(self.filters)
        if self.pagination_page is not None:
            data["pagination"] = {"currentPage": self.pagination_page}
        else:
            data.pop("pagination", None)
        return data

    @classmethod
    def from_search_query_state(cls, data: Dict[str, Any]) -> QueryState:
        bounds = data.get("mapBounds")
        if not isinstance(bounds, dict):
            raise ValueError("searchQueryState has no mapBounds")
        viewport = Viewport.from_map_bounds(bounds, data.get("mapZoom", bounds.get("mapZoom")))
        pagination = data.get("pagination") or {}
        page = pagination.get("currentPage") if isinstance(pagination, dict) else None
        extra = {k: v for k, v in data.items() if k not in {"mapBounds", "mapZoom", "filterState", "pagination"}}
        return cls(
            viewport=viewport,
            filters=dict(data.get("filterState") or {}),
            pagination_page=int(page) if page else None,
            extra=extra,
        )


@dataclass(slots=True)
class ResultRecord:
    """One entity discovered on a search result page."""

    entity_id: Optional[str]
    address: str = ""
    detail_url: str = ""
    raw_payload: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> ResultRecord:
        zpid = raw.get("zpid")
        entity_id = None if zpid is None or zpid == "" else str(zpid)
        return cls(
            entity_id=entity_id,
            address=str(raw.get("address") or ""),
            detail_url=str(raw.get("detailUrl") or ""),
            raw_payload=raw,
        )


@dataclass(slots=True)
class CategoryExtract:
    state: QueryState
    total_count: int
    results: List[ResultRecord] = field(default_factory=list)


@dataclass(slots=True)
class AddressMatch:
    result: ResultRecord
    candidate_address: str
    score: float
    candidate_index: int = 0


@dataclass(slots=True)
class JobDescriptor:
    """Follow-up work submitted to the host queue.

    `identity` is what the host dedups on; `payload` carries the query state,
    split level, page number or entity ids the handler needs.
    """

    label: str
    target: str
    identity: str
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: bool = False

    @property
    def split_level(self) -> int:
        return int(self.payload.get("split_level") or 0)

    @property
    def page_number(self) -> int:
        return int(self.payload.get("page_number") or 1)

    @property
    def query_state(self) -> Optional[QueryState]:
        raw = self.payload.get("search_query_state")
        if raw is None:
            return None
        return QueryState.from_search_query_state(raw)
