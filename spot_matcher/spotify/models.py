"""
Data models for Spotify entities.

The matching pipeline only needs a song name and an artist string for
each track; the remaining fields are carried through to the results so
callers can link back to Spotify.

Design Decisions:
    - Track is frozen (immutable): it is read once from the source playlist
      and never modified afterwards
    - artist holds every credited artist joined with ", ", matching how the
      query generator splits multi-artist strings

Usage:
    from spot_matcher.spotify.models import Track

    track = Track(name="Bohemian Rhapsody", artist="Queen")
    track = Track.from_spotify_api(item["track"])
    track = Track.from_dict({"name": "Levitating", "artist": "Dua Lipa, DaBaby"})
"""

from dataclasses import dataclass
from typing import Any


SPOTIFY_TRACK_URL = "https://open.spotify.com/track/{}"


@dataclass(frozen=True)
class Track:
    """
    Immutable input unit of the matching pipeline.

    Attributes:
        name: Track title as it appears on Spotify.
              Example: "Bohemian Rhapsody"

        artist: All credited artists joined with ", ".
                Example: "Calvin Harris, Dua Lipa"

        spotify_id: Spotify track ID, when the track came from Spotify.
                    Example: "4cOdK2wGLETKBW3PvgPWqT"

        album: Album name, empty when unknown.

        duration_ms: Track duration in milliseconds, 0 when unknown.
    """
    name: str
    artist: str
    spotify_id: str | None = None
    album: str = ""
    duration_ms: int = 0

    @property
    def spotify_url(self) -> str | None:
        """Spotify URL for the track, or None when the id is unknown."""
        if not self.spotify_id:
            return None
        return SPOTIFY_TRACK_URL.format(self.spotify_id)

    @property
    def display_name(self) -> str:
        return f"{self.artist} - {self.name}"

    @classmethod
    def from_spotify_api(cls, track_data: dict[str, Any]) -> "Track":
        """
        Create a Track from a Spotify API track object.

        Args:
            track_data: The 'track' field of a playlist item, or the
                        response of spotify.track(track_id).

        Raises:
            ValueError: If the object has no name.
        """
        name = (track_data.get("name") or "").strip()
        if not name:
            raise ValueError("Spotify track has no name")

        artists = [
            artist.get("name", "").strip()
            for artist in track_data.get("artists") or []
            if artist.get("name")
        ]

        album = (track_data.get("album") or {}).get("name") or ""

        return cls(
            name=name,
            artist=", ".join(artists) or "Unknown Artist",
            spotify_id=track_data.get("id"),
            album=album,
            duration_ms=track_data.get("duration_ms") or 0,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Track":
        """
        Create a Track from a plain {"name", "artist"} mapping.

        Accepts the optional keys "spotifyId"/"spotify_id", "album" and
        "durationMs"/"duration_ms" as well.

        Raises:
            ValueError: If name or artist is missing or not a non-empty string.
        """
        if not isinstance(data, dict):
            raise ValueError("Track entry must be an object")

        name = data.get("name")
        artist = data.get("artist")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Track entry is missing 'name'")
        if not isinstance(artist, str) or not artist.strip():
            raise ValueError("Track entry is missing 'artist'")

        duration = data.get("durationMs", data.get("duration_ms")) or 0
        if not isinstance(duration, int):
            raise ValueError("Track 'durationMs' must be an integer")

        return cls(
            name=name.strip(),
            artist=artist.strip(),
            spotify_id=data.get("spotifyId") or data.get("spotify_id"),
            album=data.get("album") or "",
            duration_ms=duration,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "artist": self.artist,
            "spotifyId": self.spotify_id,
            "album": self.album,
            "durationMs": self.duration_ms,
        }
