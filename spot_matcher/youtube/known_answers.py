"""
Known-answers override for track matching.

A small, content-specific table of tracks whose correct video is already
known. The track matcher consults it before searching; a hit costs no
search query at all. The table is optional and swappable, the matching
algorithm never depends on it.

File format (YAML):

    answers:
      "queen bohemian rhapsody":
        video_id: fJ9rUzIMcZQ
        title: "Queen - Bohemian Rhapsody (Official Video Remastered)"
        channel: QueenOfficial
        official: true

Keys are "artist title" in lowercase. A top-level mapping without the
'answers' wrapper is accepted too.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from spot_matcher.core.exceptions import ConfigError
from spot_matcher.core.logger import get_logger


logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")
_FEAT_TAIL = re.compile(r",?\s+feat\..*$", re.IGNORECASE)
_WITH_TAIL = re.compile(r",?\s+with\s.*$", re.IGNORECASE)


def normalize_key(text: str) -> str:
    return _WHITESPACE.sub(" ", text.lower()).strip()


@dataclass(frozen=True)
class KnownAnswer:
    """A known-correct video for one track."""
    video_id: str
    title: str
    channel_name: str
    official: bool = True


class KnownAnswers:
    """
    Lookup table of known track -> video answers.

    Args:
        answers: Mapping of "artist title" keys to KnownAnswer.

    Example:
        known = KnownAnswers.from_yaml(Path("known_answers.yaml"))
        answer = known.lookup("The Weeknd", "Blinding Lights")
    """

    def __init__(self, answers: dict[str, KnownAnswer] | None = None) -> None:
        self._answers = {normalize_key(key): value for key, value in (answers or {}).items()}

    def __len__(self) -> int:
        return len(self._answers)

    @classmethod
    def from_yaml(cls, path: Path) -> "KnownAnswers":
        """
        Load answers from a YAML file.

        Raises:
            ConfigError: If the file is missing, unreadable, not valid YAML,
                         or an entry lacks video_id.
        """
        if not path.exists():
            raise ConfigError(
                f"Known answers file not found: {path}",
                details={"file_path": str(path)}
            )

        try:
            with open(path, "r", encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(
                f"Failed to read known answers file: {e}",
                details={"file_path": str(path), "original_error": str(e)}
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid YAML syntax in known answers file: {e}",
                details={"file_path": str(path), "original_error": str(e)}
            ) from e

        if document is None:
            return cls()
        if isinstance(document, dict) and "answers" in document:
            document = document["answers"] or {}
        if not isinstance(document, dict):
            raise ConfigError(
                "Known answers file must contain a mapping",
                details={"file_path": str(path)}
            )

        answers = {
            str(key): cls._parse_entry(str(key), entry, path)
            for key, entry in document.items()
        }
        logger.debug(f"Loaded {len(answers)} known answers from {path}")
        return cls(answers)

    @staticmethod
    def _parse_entry(key: str, entry: Any, path: Path) -> KnownAnswer:
        if not isinstance(entry, dict) or not entry.get("video_id"):
            raise ConfigError(
                f"Known answer '{key}' needs a video_id",
                details={"file_path": str(path), "key": key}
            )
        return KnownAnswer(
            video_id=str(entry["video_id"]),
            title=str(entry.get("title", "")),
            channel_name=str(entry.get("channel", "")),
            official=bool(entry.get("official", True)),
        )

    def lookup_keys(self, artist: str, title: str) -> list[str]:
        """
        Key variants tried for a track, in order, without duplicates.

        The song title loses parenthetical content and "- version" tails;
        the artist is tried whole, as its first comma-separated name, as each
        comma/&-separated name, as its first word, and without feat./with tails.
        """
        a = normalize_key(artist)
        t = normalize_key(title.split("(")[0].split(" - ")[0])

        keys = [
            f"{a} {t}",
            f"{t} {a}",
            f"{a.split(',')[0].strip()} {t}",
        ]
        keys.extend(f"{name.strip()} {t}" for name in re.split(r"[,&]", a) if name.strip())
        keys.append(f"{a.split(' ')[0]} {t}")
        keys.append(f"{_FEAT_TAIL.sub('', a).strip()} {t}")
        keys.append(f"{_WITH_TAIL.sub('', a).strip()} {t}")

        unique: list[str] = []
        for key in keys:
            key = normalize_key(key)
            if key not in unique:
                unique.append(key)
        return unique

    def lookup(self, artist: str, title: str) -> KnownAnswer | None:
        if not self._answers:
            return None
        for key in self.lookup_keys(artist, title):
            answer = self._answers.get(key)
            if answer is not None:
                logger.debug(f"Known answer for '{key}': {answer.video_id}")
                return answer
        return None
