"""Scraped metadata models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class Track(BaseModel):
    """One track as scraped from a track page or a playlist row."""

    model_config = ConfigDict(extra='ignore')

    id: str
    title: str
    artist: str
    duration: int = 0
    added_at: str = Field(default_factory=_utc_now_iso)
    album: str | None = None
    podcast: str | None = None
    release_date: str | None = None
    popularity: int | None = None
    cover_url: str | None = None
    image_url: str | None = None
    spotify_url: str | None = None


class PlaylistStats(BaseModel):
    track_count: int = Field(serialization_alias='trackCount')
    total_duration: int = Field(serialization_alias='totalDuration')

    @classmethod
    def from_tracks(cls, tracks: list[Track]) -> 'PlaylistStats':
        return cls(track_count=len(tracks), total_duration=sum(track.duration for track in tracks))


class TrackPageInfo(BaseModel):
    """Row counts reported by the playlist page."""

    expected_tracks: int = Field(default=0, validation_alias='expectedTracks')
    current_tracks: int = Field(default=0, validation_alias='currentTracks')
