"""
Spotify track source for spot-matcher.

Components:
    - Track: Immutable (name, artist) input unit of the matching pipeline
    - SpotifyClient: spotipy wrapper that flattens a playlist into Tracks

Usage:
    from spot_matcher.spotify import SpotifyClient, Track

    client = SpotifyClient(config.spotify.client_id, config.spotify.client_secret)
    tracks = client.fetch_tracks(playlist_url)
"""

from spot_matcher.spotify.client import SpotifyClient
from spot_matcher.spotify.models import Track

__all__ = [
    "SpotifyClient",
    "Track",
]
