"""Scrapers for track and playlist pages."""

from fetchify.fetchers.playlist import PlaylistFetcher, fetch_playlist
from fetchify.fetchers.track import TrackFetcher, fetch_track
from fetchify.fetchers.views import PlaylistStats, Track

__all__ = [
    "PlaylistFetcher",
    "PlaylistStats",
    "Track",
    "TrackFetcher",
    "fetch_playlist",
    "fetch_track",
]
