# wasteroute/core/ordering.py
from math import asin, cos, radians, sin
from typing import Any, Dict, List, Optional, Sequence, Tuple

LatLng = Tuple[float, float]


def haversine_km(a: LatLng, b: LatLng) -> float:
    lat1, lng1 = a
    lat2, lng2 = b
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)
    x = sin(dlat / 2.0) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng / 2.0) ** 2
    return 6371.0 * 2.0 * asin(min(1.0, x ** 0.5))


def coords_of(doc: Dict[str, Any]) -> Optional[LatLng]:
    loc = (doc.get("pickup_location") or {}).get("coordinates") or {}
    lat, lng = loc.get("lat"), loc.get("lng")
    if lat is None or lng is None:
        return None
    return float(lat), float(lng)


def nearest_neighbor_order(points: Sequence[Optional[LatLng]]) -> List[int]:
    """
    Greedy nearest-neighbour visiting order over positions in `points`.

    Starts at the first position that has coordinates. Equal distances go to
    the lower index. Positions without coordinates follow, in their original
    order. The result is always a permutation of range(len(points)).
    """
    located = [i for i, p in enumerate(points) if p is not None]
    missing = [i for i, p in enumerate(points) if p is None]

    order: List[int] = []
    if located:
        cur = located[0]
        order.append(cur)
        remaining = located[1:]
        while remaining:
            best, best_d = remaining[0], haversine_km(points[cur], points[remaining[0]])
            for i in remaining[1:]:
                d = haversine_km(points[cur], points[i])
                if d < best_d:
                    best, best_d = i, d
            order.append(best)
            remaining.remove(best)
            cur = best
    return order + missing


def is_permutation(order: Sequence[int], n: int) -> bool:
    return len(order) == n and sorted(order) == list(range(n))


def append_member(collections: List[str], order: List[int], rid: str) -> Tuple[List[str], List[int]]:
    if rid in collections:
        return list(collections), list(order)
    return list(collections) + [rid], list(order) + [len(collections)]


def remove_member(collections: List[str], order: List[int], rid: str) -> Tuple[List[str], List[int]]:
    if rid not in collections:
        return list(collections), list(order)
    idx = collections.index(rid)
    new_cols = collections[:idx] + collections[idx + 1:]
    new_order = [i - 1 if i > idx else i for i in order if i != idx]
    return new_cols, new_order


def ordered_members(route: Dict[str, Any], docs_by_id: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Member documents in visiting order; falls back to insertion order."""
    collections = [str(c) for c in route.get("collections", [])]
    order = route.get("optimized_order") or []
    if not is_permutation(order, len(collections)):
        order = list(range(len(collections)))
    return [docs_by_id[collections[i]] for i in order if collections[i] in docs_by_id]
