"""Parse GPX files into track segments and waypoints.

The parsing is event driven: an expat SAX reader (through ``defusedxml``)
tokenizes the document and calls :class:`GpxContentHandler` once per element
start, text fragment and element end, in document order.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Union
from xml.sax import SAXParseException
from xml.sax.handler import ContentHandler

import defusedxml
import defusedxml.sax

from .errors import (
    DateTimeFormatError,
    GpxSyntaxError,
    MalformedNumberError,
    StructuralViolationError,
)
from .messages import MessageLookup, get_message

logger = logging.getLogger(__name__)

MAX_GPX_SIZE = 50 * 1024 * 1024  # 50 MB
DEFAULT_CHUNK_SIZE = 64 * 1024
_HTML_SIGNATURES = ["<!doctype html", "<html", "<head", "<body"]

ATTR_LAT = "lat"
ATTR_LON = "lon"
ELEM_TRKSEG = "trkseg"
ELEM_TRKPT = "trkpt"
ELEM_WPT = "wpt"
ELEM_TIME = "time"
ELEM_SPEED = "speed"
ELEM_NAME = "name"
ELEM_CMT = "cmt"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)
# extended ISO-8601 date and time, optional offset
_DATE_TIME_SHAPE = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})?"
)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float
    time: Optional[int] = None  # epoch milliseconds
    speed: Optional[float] = None  # m/s, as recorded
    comment: Optional[str] = None


@dataclass(frozen=True)
class Waypoint:
    lat: float
    lon: float
    time: Optional[int] = None  # epoch milliseconds
    name: Optional[str] = None


TrackSegment = tuple[GeoPoint, ...]


@dataclass(frozen=True)
class ParseResult:
    """Track segments and waypoints in document order."""
    segments: tuple[TrackSegment, ...] = ()
    waypoints: tuple[Waypoint, ...] = ()

    @property
    def points(self) -> list[GeoPoint]:
        """All track points of all segments, flattened."""
        return [p for segment in self.segments for p in segment]

    @property
    def has_timestamps(self) -> bool:
        return any(p.time is not None for p in self.points)


@dataclass
class _PointBuilder:
    lat: float
    lon: float
    time: Optional[int] = None
    speed: Optional[float] = None
    comment: Optional[str] = None

    def build(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lon, self.time, self.speed, self.comment)


@dataclass
class _WaypointBuilder:
    lat: float
    lon: float
    time: Optional[int] = None
    name: Optional[str] = None

    def build(self) -> Waypoint:
        return Waypoint(self.lat, self.lon, self.time, self.name)


@dataclass
class _CharacterStack:
    """One text buffer per open element, plus one for the document itself."""
    _buffers: list[list[str]] = field(default_factory=lambda: [[]])

    def push(self) -> None:
        self._buffers.append([])

    def append(self, fragment: str) -> None:
        self._buffers[-1].append(fragment)

    def pop(self) -> str:
        return "".join(self._buffers.pop())


def parse_date_time(text: Optional[str], messages: MessageLookup = get_message) -> Optional[int]:
    """Convert a GPX time string to epoch milliseconds.

    Offset-aware ISO-8601 strings use their own offset; zone-naive ones are
    read as process local time. Only the extended form
    ``YYYY-MM-DDTHH:MM[:SS[.fff]]`` with an optional ``Z`` or ``+HH:MM`` is
    accepted. Blank text means no timestamp and returns None. Anything else
    raises DateTimeFormatError.
    """
    if text is None or not text.strip():
        return None

    try:
        stripped = text.strip()
        if not _DATE_TIME_SHAPE.fullmatch(stripped):
            raise ValueError(stripped)
        dt = datetime.fromisoformat(stripped)
    except ValueError:
        logger.error("Unable to parse date and time from string '%s'", text)
        raise DateTimeFormatError(messages("gpxparser.error.datetimeformat", text), text) from None

    if dt.tzinfo is None:
        dt = dt.astimezone()  # attach the local zone
    return (dt - _EPOCH) // _ONE_MS


def _parse_float(value: Optional[str], field_name: str, element: str, messages: MessageLookup) -> float:
    if value is None:
        raise MalformedNumberError(
            messages("gpxparser.error.missing_attribute", field_name, element), field_name, None
        )
    try:
        if "_" in value:  # digit separators are Python-only syntax
            raise ValueError(value)
        return float(value)
    except ValueError:
        raise MalformedNumberError(
            messages("gpxparser.error.number", field_name, element, value), field_name, value
        ) from None


class GpxContentHandler(ContentHandler):
    """SAX handler building track segments and waypoints from GPX events.

    A handler collects one document; create a new one for every parse.
    """

    def __init__(self, messages: MessageLookup = get_message):
        super().__init__()
        self._messages = messages
        self._characters = _CharacterStack()
        self._segments: list[TrackSegment] = []
        self._waypoints: list[Waypoint] = []
        self._segment: Optional[list[GeoPoint]] = None
        self._point: Optional[_PointBuilder] = None
        self._waypoint: Optional[_WaypointBuilder] = None

    def startElement(self, name, attrs) -> None:
        self._characters.push()
        if name == ELEM_TRKSEG:
            if self._segment is not None:
                logger.warning(
                    "Nested <trkseg> start, discarding %d unfinished points", len(self._segment)
                )
            self._segment = []
        elif name in (ELEM_TRKPT, ELEM_WPT):
            lat = _parse_float(attrs.get(ATTR_LAT), ATTR_LAT, name, self._messages)
            lon = _parse_float(attrs.get(ATTR_LON), ATTR_LON, name, self._messages)
            if name == ELEM_TRKPT:
                self._point = _PointBuilder(lat, lon)
            else:
                self._waypoint = _WaypointBuilder(lat, lon)

    def characters(self, content) -> None:
        self._characters.append(content)

    def endElement(self, name) -> None:
        text = self._characters.pop()

        if name == ELEM_TRKSEG:
            if self._segment is None:
                raise StructuralViolationError(
                    self._messages("gpxparser.error.segment_not_open"), name
                )
            self._segments.append(tuple(self._segment))
            self._segment = None
        elif name == ELEM_TRKPT:
            if self._segment is None:
                raise StructuralViolationError(
                    self._messages("gpxparser.error.point_outside_segment", name), name
                )
            if self._point is None:
                raise StructuralViolationError(
                    self._messages("gpxparser.error.unmatched_end", name), name
                )
            self._segment.append(self._point.build())
            self._point = None
        elif name == ELEM_WPT:
            if self._waypoint is None:
                raise StructuralViolationError(
                    self._messages("gpxparser.error.unmatched_end", name), name
                )
            self._waypoints.append(self._waypoint.build())
            self._waypoint = None
        elif name == ELEM_TIME:
            timestamp = parse_date_time(text, self._messages)
            target = self._point or self._waypoint
            if target is not None:
                target.time = timestamp
        elif name == ELEM_SPEED:
            if self._point is not None and text:
                self._point.speed = _parse_float(text, ELEM_SPEED, ELEM_TRKPT, self._messages)
        elif name == ELEM_NAME:
            if self._waypoint is not None:
                self._waypoint.name = text
        elif name == ELEM_CMT:
            if self._point is not None:
                self._point.comment = text

    @property
    def segments(self) -> tuple[TrackSegment, ...]:
        return tuple(self._segments)

    @property
    def waypoints(self) -> tuple[Waypoint, ...]:
        return tuple(self._waypoints)

    def result(self) -> ParseResult:
        return ParseResult(self.segments, self.waypoints)


def feed_gpx(
    chunks: Iterable[Union[bytes, str]],
    handler: Optional[GpxContentHandler] = None,
) -> ParseResult:
    """Run a defused SAX reader over ``chunks`` and return what the handler collected.

    Tokenizer errors propagate as ``SAXParseException`` or
    ``defusedxml.DefusedXmlException``; handler errors propagate unchanged.
    """
    if handler is None:
        handler = GpxContentHandler()
    reader = defusedxml.sax.make_parser()
    reader.setContentHandler(handler)
    for chunk in chunks:
        reader.feed(chunk)
    reader.close()
    result = handler.result()
    logger.debug(
        "Parsed %d segments (%d points), %d waypoints",
        len(result.segments), len(result.points), len(result.waypoints),
    )
    return result


def parse_gpx_string(text: Union[str, bytes], messages: MessageLookup = get_message) -> ParseResult:
    """Parse an in-memory GPX document."""
    try:
        return feed_gpx([text], GpxContentHandler(messages))
    except SAXParseException as e:
        raise GpxSyntaxError(messages("gpxparser.error.xml", "<string>", e.getMessage())) from None
    except defusedxml.DefusedXmlException as e:
        raise GpxSyntaxError(messages("gpxparser.error.unsafe_xml", "<string>", e)) from None


def _read_chunks(f, chunk_size: int, total: int, progress_callback) -> Iterable[bytes]:
    done = 0
    for chunk in iter(lambda: f.read(chunk_size), b""):
        yield chunk
        done += len(chunk)
        if progress_callback:
            progress_callback(done, total)


def parse_gpx(
    file_path: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    messages: MessageLookup = get_message,
) -> ParseResult:
    """Parse a GPX file and return its track segments and waypoints."""
    file_size = os.path.getsize(file_path)
    if file_size > MAX_GPX_SIZE:
        raise ValueError(
            f"GPX file too large ({file_size / 1024 / 1024:.1f} MB, max 50 MB)"
        )

    with open(file_path, "rb") as f:
        try:
            return feed_gpx(
                _read_chunks(f, chunk_size, file_size, progress_callback),
                GpxContentHandler(messages),
            )
        except SAXParseException as e:
            # Sniff the file to give an actionable error message
            with open(file_path, "r", errors="replace") as sniff:
                head = sniff.read(500).lower()
            if any(sig in head for sig in _HTML_SIGNATURES):
                raise GpxSyntaxError(messages("gpxparser.error.html")) from None
            raise GpxSyntaxError(
                messages("gpxparser.error.xml", file_path, e.getMessage())
            ) from None
        except defusedxml.DefusedXmlException as e:
            raise GpxSyntaxError(messages("gpxparser.error.unsafe_xml", file_path, e)) from None
