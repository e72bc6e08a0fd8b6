# tests/test_utils.py
"""Test utilities and helpers"""

import pytest

from spot_matcher.utils import (
    WATCH_VIDEOS_LIMIT,
    adaptive_chunk_size,
    build_watch_videos_url,
    build_watch_videos_urls,
    chunked,
    extract_playlist_id,
    manual_search_url,
    window_tracks,
)


class TestHelpers:
    """Test helper functions"""

    def test_extract_playlist_id(self):
        """Test playlist URL, URI and id parsing"""
        playlist_id = "37i9dQZF1DXcBWIGoYBM5M"
        assert extract_playlist_id(f"https://open.spotify.com/playlist/{playlist_id}?si=abc") == playlist_id
        assert extract_playlist_id(f"spotify:playlist:{playlist_id}") == playlist_id
        assert extract_playlist_id(f"  {playlist_id} ") == playlist_id
        assert extract_playlist_id("https://open.spotify.com/track/4cOdK2wGLETKBW3PvgPWqT") is None
        assert extract_playlist_id("not a playlist") is None

    def test_manual_search_url(self):
        """Test the fallback search link"""
        assert manual_search_url("AC/DC", "Back In Black") == (
            "https://www.youtube.com/results?search_query=AC%2FDC+Back+In+Black+official+video"
        )

    def test_watch_videos_urls(self):
        """Test playlist URLs for many video ids"""
        ids = [f"v{i}" for i in range(WATCH_VIDEOS_LIMIT * 2 + 1)]

        urls = build_watch_videos_urls(ids)

        assert len(urls) == 3
        assert urls[0].endswith(",v49")
        assert urls[2] == "https://www.youtube.com/watch_videos?video_ids=v100"
        assert build_watch_videos_url(ids) == urls[0]
        assert build_watch_videos_url([]) is None
        assert build_watch_videos_urls([]) == []

    def test_chunked(self):
        """Test slicing"""
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        with pytest.raises(ValueError):
            list(chunked([1], 0))

    def test_adaptive_chunk_size(self):
        """Test window sizes by playlist length"""
        assert adaptive_chunk_size(10) == 50
        assert adaptive_chunk_size(100) == 100
        assert adaptive_chunk_size(499) == 100
        assert adaptive_chunk_size(500) == 200


class TestWindowTracks:
    """Test track windows"""

    def test_whole_list(self):
        """Test the default window"""
        selected, window = window_tracks(list("abcde"))

        assert selected == list("abcde")
        assert (window.start_from_track, window.end_track, window.total_available) == (1, 5, 5)
        assert not window.has_more
        assert window.next_start_from_track is None

    def test_middle_window(self):
        """Test a window with more tracks after it"""
        selected, window = window_tracks(list("abcdefghij"), start_from_track=4, max_tracks=3)

        assert selected == ["d", "e", "f"]
        assert window.to_dict() == {
            "startFromTrack": 4,
            "endTrack": 6,
            "totalAvailable": 10,
            "hasMore": True,
            "nextStartFromTrack": 7,
        }

    def test_window_clipped_at_end(self):
        """Test that max_tracks past the end is clipped"""
        selected, window = window_tracks(list("abc"), start_from_track=2, max_tracks=10)

        assert selected == ["b", "c"]
        assert not window.has_more

    def test_empty_list(self):
        """Test that an empty list gives an empty window"""
        selected, window = window_tracks([])

        assert selected == []
        assert window.total_available == 0
        assert not window.has_more

    @pytest.mark.parametrize("start, max_tracks", [(0, None), (4, None), (1, 0)])
    def test_invalid_windows(self, start, max_tracks):
        """Test window validation"""
        with pytest.raises(ValueError):
            window_tracks(list("abc"), start_from_track=start, max_tracks=max_tracks)
