"""CLI entry point for gpx-animator."""

import json
import logging
import os
from datetime import datetime, timezone

import click
from tqdm import tqdm

from .gpx_parser import DEFAULT_CHUNK_SIZE, ParseResult, parse_gpx
from .route import (
    compute_bounds,
    compute_cumulative_distances,
    compute_speeds,
    frame_count,
    segment_duration_ms,
)

logger = logging.getLogger(__name__)

QUALITY_PRESETS = {
    "fast": {"fps": 15},
    "medium": {"fps": 24},
    "high": {"fps": 30},
}


def _format_time(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _frames_or_none(points, fps):
    try:
        return frame_count(points, fps)
    except ValueError as e:
        logger.warning("No animation frames for segment: %s", e)
        return None


def summarize(result: ParseResult, fps: int) -> dict:
    """Per-segment and waypoint summary of a parsed GPX document."""
    segments = []
    for index, points in enumerate(result.segments):
        points = list(points)
        duration = segment_duration_ms(points)
        speeds = compute_speeds(points) if points else []
        segments.append({
            "index": index,
            "points": len(points),
            "distance_m": float(compute_cumulative_distances(points)[-1]) if points else 0.0,
            "start": points[0].time if points else None,
            "end": points[-1].time if points else None,
            "duration_ms": duration,
            "max_speed_kmh": float(max(speeds)) if len(speeds) else 0.0,
            "frames": _frames_or_none(points, fps),
        })
    return {
        "segments": segments,
        "waypoints": [
            {"name": w.name, "lat": w.lat, "lon": w.lon, "time": w.time}
            for w in result.waypoints
        ],
        "bounds": compute_bounds(result.points + list(result.waypoints)),
    }


@click.command()
@click.argument("gpx_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--fps", default=None, type=int, help="Frames per second (overrides quality preset).")
@click.option("--quality", type=click.Choice(["fast", "medium", "high"]), default="medium",
              help="Quality preset: fast=15fps, medium=24fps, high=30fps.")
@click.option("--chunk-size", default=DEFAULT_CHUNK_SIZE, show_default=True,
              help="Bytes fed to the XML parser per step.")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(
    gpx_file: str,
    fps: int | None,
    quality: str,
    chunk_size: int,
    as_json: bool,
    verbose: bool,
) -> None:
    """Parse a GPX file and summarize its tracks and waypoints for animation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    effective_fps = fps if fps is not None else QUALITY_PRESETS[quality]["fps"]
    if effective_fps <= 0:
        raise click.UsageError("--fps must be positive.")
    if chunk_size <= 0:
        raise click.UsageError("--chunk-size must be positive.")

    read_bar = tqdm(total=os.path.getsize(gpx_file), unit="B", unit_scale=True,
                    desc="Parsing", leave=False, disable=as_json)

    def on_progress(current: int, total: int) -> None:
        read_bar.n = current
        read_bar.refresh()

    try:
        result = parse_gpx(gpx_file, chunk_size=chunk_size, progress_callback=on_progress)
        summary = summarize(result, effective_fps)
    except ValueError as e:
        raise click.ClickException(str(e)) from None
    finally:
        read_bar.close()

    if as_json:
        click.echo(json.dumps(summary, indent=2))
        return

    click.echo(f"GPX file: {gpx_file}")
    click.echo(f"  Found {len(summary['segments'])} track segments, "
               f"{len(result.points)} track points, {len(result.waypoints)} waypoints")
    for seg in summary["segments"]:
        duration = seg["duration_ms"]
        duration_text = f"{duration / 1000:.0f}s" if duration is not None else "unknown"
        click.echo(
            f"  Segment {seg['index'] + 1}: {seg['points']} points, "
            f"{seg['distance_m'] / 1000:.2f} km, {duration_text}, "
            f"max {seg['max_speed_kmh']:.1f} km/h, "
            f"{seg['frames'] if seg['frames'] is not None else 'no'} frames at {effective_fps}fps"
        )
        click.echo(f"    {_format_time(seg['start'])} -> {_format_time(seg['end'])}")
    for wpt in summary["waypoints"]:
        click.echo(f"  Waypoint {wpt['name'] or '(unnamed)'}: {wpt['lat']}, {wpt['lon']}")


if __name__ == "__main__":
    main()
