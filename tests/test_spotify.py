# tests/test_spotify.py
"""Test Spotify models and the playlist client"""

from unittest.mock import Mock

import pytest
import spotipy

from spot_matcher.core.exceptions import SpotifyError
from spot_matcher.spotify.client import SpotifyClient
from spot_matcher.spotify.models import Track


def playlist_item(track_id, name, artist="Artist", **extra):
    track = {
        "id": track_id,
        "type": "track",
        "name": name,
        "artists": [{"id": f"a_{track_id}", "name": artist}],
        "album": {"id": "album", "name": "Album"},
        "duration_ms": 200000,
        "is_local": False,
    }
    track.update(extra)
    return {"track": track}


class TestTrack:
    """Test the Track model"""

    def test_from_spotify_api(self, sample_track_data):
        """Test conversion of a Spotify track object"""
        track = Track.from_spotify_api(sample_track_data["track"])

        assert track.name == "Test Song"
        assert track.artist == "Test Artist, Other Artist"
        assert track.spotify_id == "test_track_123"
        assert track.album == "Test Album"
        assert track.duration_ms == 210000
        assert track.spotify_url == "https://open.spotify.com/track/test_track_123"
        assert track.display_name == "Test Artist, Other Artist - Test Song"

    def test_from_spotify_api_without_artists(self):
        """Test the fallback artist and missing album"""
        track = Track.from_spotify_api({"name": "Song", "artists": []})

        assert track.artist == "Unknown Artist"
        assert track.album == ""
        assert track.spotify_url is None

    def test_from_spotify_api_without_name(self):
        """Test that a nameless track is rejected"""
        with pytest.raises(ValueError):
            Track.from_spotify_api({"name": "  ", "artists": [{"name": "A"}]})

    def test_from_dict(self):
        """Test plain track entries"""
        track = Track.from_dict({"name": " Levitating ", "artist": "Dua Lipa", "spotifyId": "x1", "durationMs": 5})

        assert track == Track(name="Levitating", artist="Dua Lipa", spotify_id="x1", duration_ms=5)
        assert Track.from_dict(track.to_dict()) == track

    @pytest.mark.parametrize("data", [
        {"artist": "Dua Lipa"},
        {"name": "Levitating"},
        {"name": "", "artist": "Dua Lipa"},
        {"name": "Levitating", "artist": 3},
        {"name": "Levitating", "artist": "Dua Lipa", "durationMs": "long"},
        "Levitating",
    ])
    def test_from_dict_invalid(self, data):
        """Test that malformed entries are rejected"""
        with pytest.raises(ValueError):
            Track.from_dict(data)

    def test_track_is_immutable(self):
        """Test that tracks are frozen"""
        track = Track(name="Song", artist="Artist")
        with pytest.raises(AttributeError):
            track.name = "Other"


class TestSpotifyClient:
    """Test the spotipy wrapper with a mocked spotipy instance"""

    def test_requires_credentials(self):
        """Test that missing credentials are an auth error"""
        with pytest.raises(SpotifyError) as exc_info:
            SpotifyClient()
        assert exc_info.value.is_auth_error

    def test_fetch_tracks_paginates_and_filters(self):
        """Test pagination and skipping of unusable items"""
        spotify = Mock()
        spotify.playlist_items.side_effect = [
            {
                "items": [
                    playlist_item("t1", "First"),
                    playlist_item("t2", "Local", is_local=True),
                    {"track": None},
                ],
                "next": "page2",
            },
            {
                "items": [
                    playlist_item("t3", "Episode", type="episode"),
                    playlist_item("t4", "Second", artist="Other"),
                    playlist_item("t5", "   "),
                ],
                "next": None,
            },
        ]
        client = SpotifyClient(spotify=spotify)

        tracks = client.fetch_tracks("37i9dQZF1DXcBWIGoYBM5M")

        assert [(t.name, t.artist) for t in tracks] == [("First", "Artist"), ("Second", "Other")]
        offsets = [call.kwargs["offset"] for call in spotify.playlist_items.call_args_list]
        assert offsets == [0, 100]

    def test_playlist_metadata(self):
        """Test the playlist metadata call"""
        spotify = Mock()
        spotify.playlist.return_value = {"id": "pl", "name": "Mix"}

        assert SpotifyClient(spotify=spotify).playlist("pl")["name"] == "Mix"

    def test_playlist_not_found(self):
        """Test that an empty response is reported"""
        spotify = Mock()
        spotify.playlist.return_value = None

        with pytest.raises(SpotifyError):
            SpotifyClient(spotify=spotify).playlist("pl")

    @pytest.mark.parametrize("status, rate_limit, auth", [
        (429, True, False),
        (404, False, False),
        (401, False, True),
        (500, False, False),
    ])
    def test_error_translation(self, status, rate_limit, auth):
        """Test that spotipy errors become SpotifyError"""
        spotify = Mock()
        spotify.playlist_items.side_effect = spotipy.SpotifyException(status, -1, "failure")

        with pytest.raises(SpotifyError) as exc_info:
            SpotifyClient(spotify=spotify).fetch_tracks("pl")

        assert exc_info.value.is_rate_limit is rate_limit
        assert exc_info.value.is_auth_error is auth
        assert exc_info.value.details["http_status"] == status
