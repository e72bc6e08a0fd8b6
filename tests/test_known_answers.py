# tests/test_known_answers.py
"""Test the known-answers table"""

import pytest

from spot_matcher.core.exceptions import ConfigError
from spot_matcher.youtube.known_answers import KnownAnswer, KnownAnswers


@pytest.fixture
def known():
    return KnownAnswers({
        "The Weeknd Blinding Lights": KnownAnswer("4NRXx6U8ABQ", "Blinding Lights", "TheWeekndVEVO"),
        "calvin harris one kiss": KnownAnswer("DkeiKbqa02g", "One Kiss", "CalvinHarrisVEVO", official=False),
    })


class TestLookup:
    """Test key variants"""

    def test_exact_and_case_insensitive(self, known):
        """Test that keys are normalized"""
        assert known.lookup("the weeknd", "BLINDING LIGHTS").video_id == "4NRXx6U8ABQ"

    def test_title_decorations_are_ignored(self, known):
        """Test parenthetical and dash suffixes"""
        assert known.lookup("The Weeknd", "Blinding Lights (Remastered)") is not None
        assert known.lookup("The Weeknd", "Blinding Lights - Radio Edit") is not None

    def test_secondary_artists_are_ignored(self, known):
        """Test multi-artist strings"""
        answer = known.lookup("Calvin Harris, Dua Lipa", "One Kiss (with Dua Lipa)")

        assert answer.video_id == "DkeiKbqa02g"
        assert not answer.official

    def test_miss(self, known):
        """Test an unknown track"""
        assert known.lookup("Adele", "Hello") is None
        assert KnownAnswers().lookup("The Weeknd", "Blinding Lights") is None

    def test_lookup_keys_are_unique(self, known):
        """Test that no key variant is tried twice"""
        keys = known.lookup_keys("Adele", "Hello")

        assert keys[0] == "adele hello"
        assert len(keys) == len(set(keys))


class TestFromYaml:
    """Test loading from YAML"""

    def test_wrapped_and_plain_documents(self, temp_dir):
        """Test both accepted layouts"""
        wrapped = temp_dir / "wrapped.yaml"
        wrapped.write_text(
            'answers:\n'
            '  "queen bohemian rhapsody":\n'
            '    video_id: fJ9rUzIMcZQ\n'
            '    title: "Queen - Bohemian Rhapsody"\n'
            '    channel: Queen Official\n'
        )
        plain = temp_dir / "plain.yaml"
        plain.write_text('"adele hello":\n  video_id: YQHsXMglC9A\n  official: false\n')

        from_wrapped = KnownAnswers.from_yaml(wrapped)
        from_plain = KnownAnswers.from_yaml(plain)

        answer = from_wrapped.lookup("Queen", "Bohemian Rhapsody")
        assert answer == KnownAnswer("fJ9rUzIMcZQ", "Queen - Bohemian Rhapsody", "Queen Official")
        assert not from_plain.lookup("Adele", "Hello").official

    def test_empty_file(self, temp_dir):
        """Test that an empty file is an empty table"""
        path = temp_dir / "empty.yaml"
        path.write_text("")

        assert len(KnownAnswers.from_yaml(path)) == 0

    @pytest.mark.parametrize("content", [
        '"adele hello":\n  title: no id\n',
        "- just\n- a list\n",
        "answers: [broken",
    ])
    def test_invalid_files(self, temp_dir, content):
        """Test that bad files are configuration errors"""
        path = temp_dir / "bad.yaml"
        path.write_text(content)

        with pytest.raises(ConfigError):
            KnownAnswers.from_yaml(path)

    def test_missing_file(self, temp_dir):
        """Test a missing file"""
        with pytest.raises(ConfigError):
            KnownAnswers.from_yaml(temp_dir / "nope.yaml")
