"""Route processing: distances, bounds, speeds and time-based resampling."""

from typing import Iterable, Optional, Union

import numpy as np

from .gpx_parser import GeoPoint, Waypoint

MS_PER_S = 1000
EARTH_RADIUS_M = 6_371_000


def haversine(lat1, lon1, lat2, lon2):
    """Great-circle distance in meters; accepts scalars or numpy arrays."""
    lat1, lon1, lat2, lon2 = map(np.radians, (lat1, lon1, lat2, lon2))
    h = (np.sin((lat2 - lat1) / 2) ** 2
         + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2)
    meters = 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(h))
    return float(meters) if np.ndim(meters) == 0 else meters


def compute_cumulative_distances(points: list[GeoPoint]) -> np.ndarray:
    """Distance in meters from the first point of a segment to each point."""
    if not points:
        return np.zeros(0)
    lats = np.array([p.lat for p in points])
    lons = np.array([p.lon for p in points])
    steps = haversine(lats[:-1], lons[:-1], lats[1:], lons[1:])
    return np.concatenate(([0.0], np.cumsum(steps)))


def segment_duration_ms(points: list[GeoPoint]) -> Optional[int]:
    """Time between the first and last point, or None if either has no time."""
    if not points or points[0].time is None or points[-1].time is None:
        return None
    return points[-1].time - points[0].time


def compute_speeds(points: list[GeoPoint], sigma: float = 0.0) -> np.ndarray:
    """Compute speed (km/h) at each point.

    Recorded ``speed`` values (m/s) win; other points get distance over time
    from the previous point. Points without usable timestamps count as 0.
    A positive sigma applies Gaussian smoothing to reduce GPS noise.
    """
    from scipy.ndimage import gaussian_filter1d

    speeds = np.zeros(len(points))
    for i, point in enumerate(points):
        if point.speed is not None:
            speeds[i] = point.speed * 3.6
        elif i > 0 and point.time is not None and points[i - 1].time is not None:
            dt = (point.time - points[i - 1].time) / MS_PER_S
            if dt > 0:
                dd = haversine(points[i - 1].lat, points[i - 1].lon, point.lat, point.lon)
                speeds[i] = (dd / dt) * 3.6  # m/s -> km/h
    if len(speeds) > 1 and points[0].speed is None:
        speeds[0] = speeds[1]

    if sigma > 0 and len(speeds) > 1:
        speeds = gaussian_filter1d(speeds, sigma=sigma)
    return np.clip(speeds, 0, None)


def _timed(points: list[GeoPoint], fps: int) -> tuple[list[GeoPoint], np.ndarray]:
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")

    timed = [p for p in points if p.time is not None]
    if len(timed) < 2:
        raise ValueError("Need at least 2 track points with timestamps to resample")

    times = np.array([p.time for p in timed], dtype=np.int64)
    if np.any(np.diff(times) < 0):
        raise ValueError("Track point timestamps are not in chronological order")
    return timed, times


def _count_frames(first_ms: int, last_ms: int, fps: int) -> int:
    return int((last_ms - first_ms) * fps // MS_PER_S) + 1


def frame_count(points: list[GeoPoint], fps: int) -> int:
    """Number of frames resample_by_time would produce, without building them."""
    _, times = _timed(points, fps)
    return _count_frames(times[0], times[-1], fps)


def resample_by_time(points: list[GeoPoint], fps: int) -> list[GeoPoint]:
    """Resample a track to one point per animation frame.

    Positions are linearly interpolated between recorded timestamps. Points
    without a timestamp are skipped; timestamps must be non-decreasing.
    """
    timed, times = _timed(points, fps)
    lats = np.array([p.lat for p in timed])
    lons = np.array([p.lon for p in timed])

    n = _count_frames(times[0], times[-1], fps)
    frame_times = times[0] + np.arange(n) * (MS_PER_S / fps)

    frame_lats = np.interp(frame_times, times, lats)
    frame_lons = np.interp(frame_times, times, lons)

    return [
        GeoPoint(lat=float(lat), lon=float(lon), time=int(t))
        for t, lat, lon in zip(frame_times, frame_lats, frame_lons)
    ]


def compute_bounds(points: Iterable[Union[GeoPoint, Waypoint]]) -> Optional[dict]:
    """Return bounding box as {sw: [lng, lat], ne: [lng, lat]}, or None if empty."""
    points = list(points)
    if not points:
        return None
    lats = [p.lat for p in points]
    lons = [p.lon for p in points]
    return {
        "sw": [min(lons), min(lats)],
        "ne": [max(lons), max(lats)],
    }
