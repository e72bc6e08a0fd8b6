"""
Spotify API client for spot-matcher.

A thin wrapper around spotipy using the client credentials flow, which is
enough to read public playlists. It only exposes what the track source
needs: playlist metadata, paginated playlist items and the flattened
track list.

spotipy is synchronous. Async callers (the HTTP server) run fetch_tracks()
in a worker thread.

Usage:
    from spot_matcher.spotify.client import SpotifyClient

    client = SpotifyClient(client_id="...", client_secret="...")
    tracks = client.fetch_tracks("https://open.spotify.com/playlist/...")
"""

from typing import Any

import spotipy
from spotipy.oauth2 import SpotifyClientCredentials

from spot_matcher.core.exceptions import SpotifyError
from spot_matcher.core.logger import get_logger
from spot_matcher.spotify.models import Track


logger = get_logger(__name__)

# Maximum page size accepted by the playlist items endpoint
PLAYLIST_PAGE_SIZE = 100


class SpotifyClient:
    """
    Read-only Spotify client for public playlists.

    Attributes:
        _spotify: The underlying spotipy.Spotify instance.

    Args:
        client_id: Spotify application client ID.
        client_secret: Spotify application client secret.
        spotify: Optional pre-built spotipy.Spotify (or compatible) instance.
                 When given, the credentials are not used.

    Raises:
        SpotifyError: If credentials are missing and no instance is given.
    """

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        spotify: spotipy.Spotify | None = None
    ) -> None:
        if spotify is None:
            if not client_id or not client_secret:
                raise SpotifyError(
                    "Spotify credentials are not configured. Set spotify.client_id and "
                    "spotify.client_secret in config.yaml or SPOTIFY_CLIENT_ID and "
                    "SPOTIFY_CLIENT_SECRET in the environment.",
                    is_auth_error=True
                )
            auth_manager = SpotifyClientCredentials(
                client_id=client_id,
                client_secret=client_secret
            )
            spotify = spotipy.Spotify(auth_manager=auth_manager)
        self._spotify = spotify

    # =========================================================================
    # Playlist Operations
    # =========================================================================

    def playlist(self, playlist_id_or_url: str) -> dict[str, Any]:
        """
        Get playlist metadata (name, owner, total tracks), without the items.

        Raises:
            SpotifyError: If playlist not found, private, or network error.
        """
        try:
            result = self._spotify.playlist(
                playlist_id_or_url,
                fields="id,name,description,owner,external_urls,tracks.total"
            )
        except spotipy.SpotifyException as e:
            raise self._translate_error(e, "fetch playlist", playlist_id_or_url) from e

        if result is None:
            raise SpotifyError(
                f"Playlist not found: {playlist_id_or_url}",
                details={"playlist_url": playlist_id_or_url}
            )
        return result

    def playlist_items(
        self,
        playlist_id_or_url: str,
        limit: int = PLAYLIST_PAGE_SIZE,
        offset: int = 0
    ) -> dict[str, Any]:
        """
        Get one page of playlist items.

        Returns:
            Dictionary with 'items', 'total' and 'next' (None on the last page).

        Raises:
            SpotifyError: If playlist not found or network error.
        """
        try:
            result = self._spotify.playlist_items(
                playlist_id_or_url,
                limit=min(limit, PLAYLIST_PAGE_SIZE),
                offset=offset,
                additional_types=["track"]
            )
        except spotipy.SpotifyException as e:
            raise self._translate_error(e, "fetch playlist items", playlist_id_or_url) from e

        if result is None:
            raise SpotifyError(
                f"Failed to fetch playlist items: {playlist_id_or_url}",
                details={"playlist_url": playlist_id_or_url}
            )
        return result

    def playlist_all_items(self, playlist_id_or_url: str) -> list[dict[str, Any]]:
        """Get ALL playlist items, paginating 100 at a time."""
        all_items: list[dict[str, Any]] = []
        offset = 0

        while True:
            response = self.playlist_items(playlist_id_or_url, offset=offset)
            all_items.extend(response.get("items", []))

            if response.get("next") is None:
                break
            offset += PLAYLIST_PAGE_SIZE

        return all_items

    def fetch_tracks(self, playlist_id_or_url: str) -> list[Track]:
        """
        Fetch the ordered, flattened track list of a playlist.

        Local files, removed tracks and podcast episodes are skipped.

        Raises:
            SpotifyError: If the playlist cannot be read.
        """
        tracks: list[Track] = []
        skipped = 0

        for item in self.playlist_all_items(playlist_id_or_url):
            if not self._is_valid_track_item(item):
                skipped += 1
                continue
            try:
                tracks.append(Track.from_spotify_api(item["track"]))
            except ValueError:
                skipped += 1

        if skipped:
            logger.debug(f"Skipped {skipped} non-track or unavailable playlist items")
        logger.info(f"Fetched {len(tracks)} tracks from Spotify")
        return tracks

    @staticmethod
    def _is_valid_track_item(item: Any) -> bool:
        if not isinstance(item, dict):
            return False

        track = item.get("track")
        if not isinstance(track, dict):
            return False

        if track.get("is_local", False):
            return False

        return track.get("type", "track") == "track"

    @staticmethod
    def _translate_error(
        error: spotipy.SpotifyException,
        action: str,
        playlist_id_or_url: str
    ) -> SpotifyError:
        details = {"playlist_url": playlist_id_or_url, "http_status": error.http_status}

        if error.http_status == 429:
            return SpotifyError(
                f"Rate limited while trying to {action}: {playlist_id_or_url}",
                details=details,
                is_rate_limit=True
            )
        if error.http_status == 404:
            return SpotifyError(f"Playlist not found: {playlist_id_or_url}", details=details)
        if error.http_status in (400, 401):
            return SpotifyError(
                f"Spotify authentication failed: {error}",
                details=details,
                is_auth_error=True
            )

        details["original_error"] = str(error)
        return SpotifyError(f"Failed to {action}: {error}", details=details)
