"""
Robust center of a set of places on the globe.

The center is the spherical geometric median: the point on the unit sphere
minimizing the sum of great-circle distances to all inputs. Unlike the
vector-mean midpoint it is not dragged away by a few distant places.

It is found with Weiszfeld's iteration carried out on unit vectors:

    p_next = normalize( sum(q_i / theta_i) / sum(1 / theta_i) )

where theta_i is the angle between the current estimate p and input q_i.
All trigonometry is in radians; dot products are clamped to [-1, 1] before
acos.
"""

import math
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .models import Coordinate

EARTH_RADIUS_M = 6371e3
DEFAULT_TOL = 1e-10
DEFAULT_MAX_ITER = 500
# Lower bound for theta so an input coinciding with the estimate gets a large finite weight.
MIN_ANGLE = 1e-15
# Vector sums shorter than this have no usable direction.
DEGENERATE_NORM = 1e-12

Vec3 = Tuple[float, float, float]

# Solvers take the coordinate set and return its center.
CenterSolver = Callable[[Sequence[Coordinate]], Coordinate]


def _clamp(v: float, lo: float, hi: float) -> float:
    return min(max(v, lo), hi)


def to_unit_vector(coord: Coordinate) -> Vec3:
    phi = math.radians(coord.lat)
    lam = math.radians(coord.lng)
    return (math.cos(phi) * math.cos(lam), math.cos(phi) * math.sin(lam), math.sin(phi))


def from_unit_vector(v: Vec3) -> Coordinate:
    x, y, z = v
    return Coordinate(
        math.degrees(math.atan2(z, math.hypot(x, y))),
        math.degrees(math.atan2(y, x)),
    )


def _dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _normalize(v: Vec3) -> Optional[Vec3]:
    n = math.sqrt(_dot(v, v))
    if n < DEGENERATE_NORM:
        return None
    return (v[0] / n, v[1] / n, v[2] / n)


def _angle(a: Vec3, b: Vec3) -> float:
    return math.acos(_clamp(_dot(a, b), -1.0, 1.0))


def _vector_sum(vectors: Iterable[Vec3]) -> Vec3:
    sx = sy = sz = 0.0
    for x, y, z in vectors:
        sx += x
        sy += y
        sz += z
    return (sx, sy, sz)


def great_circle_distance(a: Coordinate, b: Coordinate, radius: float = EARTH_RADIUS_M) -> float:
    """Haversine distance between two coordinates, in metres by default."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = phi2 - phi1
    d_lam = math.radians(b.lng - a.lng)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    return 2 * radius * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))


def total_distance(center: Coordinate, coords: Iterable[Coordinate], radius: float = EARTH_RADIUS_M) -> float:
    """Sum of great-circle distances from center to every coordinate."""
    return sum(great_circle_distance(center, c, radius) for c in coords)


def _seed(vectors: Sequence[Vec3]) -> Vec3:
    """Normalized vector sum, or the first input when the sum has no direction."""
    seed = _normalize(_vector_sum(vectors))
    if seed is None:
        return vectors[0]
    return seed


def geographic_midpoint(coords: Sequence[Coordinate]) -> Coordinate:
    """
    Vector-mean midpoint of the coordinates, projected back onto the sphere.

    Returns (0, 0) for empty input. When the unit vectors cancel out
    (e.g. two antipodal points) the first coordinate is returned.
    """
    if not coords:
        return Coordinate(0.0, 0.0)
    return from_unit_vector(_seed([to_unit_vector(c) for c in coords]))


def geometric_median_on_sphere(
    coords: Sequence[Coordinate],
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
) -> Coordinate:
    """
    Spherical geometric median of the coordinates.

    Args:
        coords: Input coordinates in degrees
        tol: Stop when successive estimates are closer than this (radians)
        max_iter: Iteration limit; hitting it is not an error

    Returns:
        The median in degrees. Empty input returns the sentinel (0, 0),
        which is not a meaningful location; callers should not pass an
        empty set. A single coordinate is returned unchanged.

    The seed is the vector-mean midpoint, or the first input when the
    inputs cancel out. The last iterate is returned, unless an earlier
    estimate had a lower total distance (Weiszfeld steps on the sphere are
    not strictly monotone); in that case the earlier estimate wins, so the
    result is never worse than the seed.
    """
    if not coords:
        return Coordinate(0.0, 0.0)
    if len(coords) == 1:
        return Coordinate(coords[0].lat, coords[0].lng)

    vectors = [to_unit_vector(c) for c in coords]
    p = _seed(vectors)
    best, best_cost = p, math.inf

    for _ in range(max_iter):
        nx = ny = nz = 0.0
        denom = 0.0
        cost = 0.0
        for q in vectors:
            theta = _angle(p, q)
            cost += theta
            w = 1.0 / max(theta, MIN_ANGLE)
            nx += w * q[0]
            ny += w * q[1]
            nz += w * q[2]
            denom += w

        if cost <= best_cost:
            best, best_cost = p, cost

        p_next = _normalize((nx / denom, ny / denom, nz / denom))
        if p_next is None or _angle(p, p_next) < tol:
            break
        p = p_next

    if sum(_angle(p, q) for q in vectors) <= best_cost:
        best = p
    return from_unit_vector(best)


def robust_spherical_center(coords: Sequence[Coordinate]) -> Coordinate:
    """Default CenterSolver: the spherical geometric median with default tolerances."""
    return geometric_median_on_sphere(coords)


def dedupe_coordinates(coords: Iterable[Coordinate], decimals: int = 6) -> List[Coordinate]:
    """Round to `decimals` places and drop repeats, keeping first-seen order."""
    seen = set()
    result: List[Coordinate] = []
    for c in coords:
        rounded = Coordinate(round(c.lat, decimals), round(c.lng, decimals))
        if rounded not in seen:
            seen.add(rounded)
            result.append(rounded)
    return result
