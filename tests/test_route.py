import numpy as np
import pytest

from gpx_animator.gpx_parser import GeoPoint, Waypoint
from gpx_animator.route import (
    compute_bounds,
    compute_cumulative_distances,
    compute_speeds,
    frame_count,
    haversine,
    resample_by_time,
    segment_duration_ms,
)


def _line(n=5, step_s=10, dlat=0.001):
    return [GeoPoint(lat=47.0 + i * dlat, lon=8.0, time=i * step_s * 1000) for i in range(n)]


class TestDistances:
    def test_haversine_accepts_arrays(self):
        dists = haversine(np.array([0.0, 10.0]), np.zeros(2), np.array([1.0, 11.0]), np.zeros(2))
        assert dists == pytest.approx([111_195, 111_195], rel=1e-3)

    def test_cumulative_distances_of_empty_segment(self):
        assert len(compute_cumulative_distances([])) == 0

    def test_haversine_one_degree_latitude(self):
        assert haversine(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)

    def test_cumulative_distances_increase(self):
        dists = compute_cumulative_distances(_line())
        assert dists[0] == 0.0
        assert np.all(np.diff(dists) > 0)
        assert dists[-1] == pytest.approx(4 * haversine(47.0, 8.0, 47.001, 8.0), rel=1e-6)


class TestDuration:
    def test_duration(self):
        assert segment_duration_ms(_line(n=4)) == 30_000

    def test_missing_time(self):
        points = _line(n=3)
        points[-1] = GeoPoint(points[-1].lat, points[-1].lon)
        assert segment_duration_ms(points) is None
        assert segment_duration_ms([]) is None


class TestSpeeds:
    def test_derived_from_distance_and_time(self):
        speeds = compute_speeds(_line())
        expected = haversine(47.0, 8.0, 47.001, 8.0) / 10 * 3.6
        assert speeds[1] == pytest.approx(expected)
        assert speeds[0] == pytest.approx(speeds[1])

    def test_recorded_speed_wins(self):
        points = _line(n=3)
        points[1] = GeoPoint(points[1].lat, points[1].lon, points[1].time, speed=5.0)
        assert compute_speeds(points)[1] == pytest.approx(18.0)

    def test_no_timestamps_gives_zero(self):
        points = [GeoPoint(47.0, 8.0), GeoPoint(47.1, 8.0)]
        assert compute_speeds(points).tolist() == [0.0, 0.0]

    def test_smoothing_keeps_length_and_sign(self):
        speeds = compute_speeds(_line(n=20), sigma=2)
        assert len(speeds) == 20
        assert np.all(speeds >= 0)


class TestResample:
    def test_one_point_per_frame(self):
        frames = resample_by_time(_line(n=3, step_s=1), fps=4)
        # 2 seconds at 4 fps, both ends included
        assert len(frames) == 9
        assert frames[0].lat == pytest.approx(47.0)
        assert frames[-1].lat == pytest.approx(47.002)
        assert frames[2].lat == pytest.approx(47.0005)
        assert [f.time for f in frames[:3]] == [0, 250, 500]

    @pytest.mark.parametrize("n, step_s, fps", [(3, 1, 4), (5, 10, 24), (2, 7, 3)])
    def test_frame_count_matches_resample(self, n, step_s, fps):
        points = _line(n=n, step_s=step_s)
        assert frame_count(points, fps) == len(resample_by_time(points, fps))

    def test_frame_count_of_a_day_at_30fps(self):
        points = [GeoPoint(47.0, 8.0, 0), GeoPoint(47.1, 8.0, 24 * 3600 * 1000)]
        assert frame_count(points, 30) == 24 * 3600 * 30 + 1

    def test_frame_count_rejects_unordered_times(self):
        with pytest.raises(ValueError, match="chronological"):
            frame_count(list(reversed(_line(n=3))), fps=10)

    def test_untimed_points_are_skipped(self):
        points = _line(n=3, step_s=1)
        points.insert(1, GeoPoint(0.0, 0.0))
        frames = resample_by_time(points, fps=1)
        assert [f.lat for f in frames] == pytest.approx([47.0, 47.001, 47.002])

    def test_needs_two_timed_points(self):
        with pytest.raises(ValueError, match="at least 2"):
            resample_by_time([GeoPoint(1.0, 1.0, 0), GeoPoint(2.0, 2.0)], fps=10)

    def test_rejects_unordered_times(self):
        points = list(reversed(_line(n=3)))
        with pytest.raises(ValueError, match="chronological"):
            resample_by_time(points, fps=10)

    def test_rejects_bad_fps(self):
        with pytest.raises(ValueError):
            resample_by_time(_line(), fps=0)


class TestBounds:
    def test_points_and_waypoints(self):
        bounds = compute_bounds([GeoPoint(47.0, 8.0), Waypoint(46.5, 9.0, name="Hut")])
        assert bounds == {"sw": [8.0, 46.5], "ne": [9.0, 47.0]}

    def test_empty(self):
        assert compute_bounds([]) is None
