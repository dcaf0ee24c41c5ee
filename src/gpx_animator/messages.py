"""User-facing message catalog, looked up by key."""

from typing import Callable

MessageLookup = Callable[..., str]

MESSAGES = {
    "gpxparser.error.datetimeformat": "Unable to parse date and time from string '{}'.",
    "gpxparser.error.number": "Invalid number for '{}' in <{}>: {!r}.",
    "gpxparser.error.missing_attribute": "Missing required attribute '{}' in <{}>.",
    "gpxparser.error.point_outside_segment": "Found </{}> outside of any <trkseg>.",
    "gpxparser.error.segment_not_open": "Found </trkseg> without a matching <trkseg>.",
    "gpxparser.error.unmatched_end": "Found </{}> without a matching start tag.",
    "gpxparser.error.xml": "Failed to parse '{}' as GPX: the file is not valid XML ({}).",
    "gpxparser.error.unsafe_xml": "Refusing to parse '{}': {}.",
    "gpxparser.error.html": (
        "The file appears to be an HTML web page, not a GPX file.\n"
        "If you downloaded this from Strava or another activity tracker,\n"
        "you need to export the GPX file first, the activity page URL\n"
        "is not a direct download link."
    ),
}


def get_message(key: str, *args) -> str:
    """Return the message for ``key`` with ``args`` substituted."""
    return MESSAGES[key].format(*args)
