"""
Search query generation for YouTube matching.

Given a track's artist and title, produce an ordered, deduplicated list of
search queries from most to least specific. Two passes exist:

    primary   Cleaned artist/title combinations, tried for every track
    advanced  Broader, punctuation-free fallbacks (exact phrases, first-word
              artist, single split artists, title alone), tried only for
              tracks explicitly sent through the retry pass

Cleaning rules:
    artist: parenthetical content and "feat./ft./featuring" tails are
            removed; the primary artist is the first name before "," or "&"
    title:  parenthetical and bracketed content, "- ... remix/version/
            remaster/edit/live" suffixes, "feat." tails and trailing
            "radio edit"/"clean"/"explicit" markers are removed

Generation is deterministic and never yields an empty or duplicate query.
"""

import re


# Upper bound on queries in one pass, whatever the caller asks for
MAX_QUERIES = 10

_PARENTHETICAL = re.compile(r"\(.*?\)")
_BRACKETED = re.compile(r"\[.*?\]")
_FEATURING_TAIL = re.compile(r"\s*\b(?:feat|ft|featuring)\b\.?.*$", re.IGNORECASE)
_FEATURING_WORD = re.compile(r"\b(?:feat|ft|featuring)\b\.?", re.IGNORECASE)
_VERSION_SUFFIX = re.compile(
    r"\s+-\s+.*\b(?:remix|mix|version|remaster(?:ed)?|edit|live|mono|stereo)\b.*$",
    re.IGNORECASE,
)
_RELEASE_MARKER = re.compile(
    r"\s+-?\s*\b(?:radio edit|clean version|explicit version|clean|explicit)\s*$",
    re.IGNORECASE,
)
_ARTIST_SEPARATOR = re.compile(r"[,&]")
_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip(" -")


def clean_artist(artist: str) -> str:
    """
    Return the primary artist name.

    Examples:
        "Calvin Harris, Dua Lipa" -> "Calvin Harris"
        "Simon & Garfunkel" -> "Simon"
        "DJ Snake feat. Justin Bieber" -> "DJ Snake"
    """
    text = _PARENTHETICAL.sub("", artist)
    text = _FEATURING_TAIL.sub("", text)
    text = _ARTIST_SEPARATOR.split(text)[0]
    return _collapse(text) or _collapse(artist)


def split_artists(artist: str) -> list[str]:
    """
    Split a multi-artist string into individual names, in order.

    Examples:
        "Calvin Harris, Dua Lipa" -> ["Calvin Harris", "Dua Lipa"]
        "DJ Snake feat. Justin Bieber" -> ["DJ Snake", "Justin Bieber"]
    """
    text = _PARENTHETICAL.sub("", artist)
    text = _FEATURING_WORD.sub(",", text)

    names: list[str] = []
    for part in _ARTIST_SEPARATOR.split(text):
        name = _collapse(part)
        if name and name not in names:
            names.append(name)
    return names


def clean_title(title: str) -> str:
    """
    Strip decorations that hurt search relevance from a song title.

    Examples:
        "Blinding Lights (Remix)" -> "Blinding Lights"
        "Bohemian Rhapsody - Remastered 2011" -> "Bohemian Rhapsody"
        "Levitating [feat. DaBaby]" -> "Levitating"
        "Señorita feat. Camila" -> "Señorita"
    """
    text = _PARENTHETICAL.sub("", title)
    text = _BRACKETED.sub("", text)
    text = _VERSION_SUFFIX.sub("", text)
    text = _FEATURING_TAIL.sub("", text)
    text = _RELEASE_MARKER.sub("", text)
    return _collapse(text) or _collapse(title)


def ultra_clean(text: str) -> str:
    """Replace every non-word character with a space and collapse whitespace."""
    return _collapse(_NON_WORD.sub(" ", text))


def _unique(queries: list[str], exclude: set[str], limit: int) -> tuple[str, ...]:
    result: list[str] = []
    for query in queries:
        query = _collapse(query)
        if not query or query.replace('"', "").strip() == "":
            continue
        if query in exclude or query in result:
            continue
        result.append(query)
        if len(result) >= limit:
            break
    return tuple(result)


class QueryGenerator:
    """
    Deterministic query generator.

    Args:
        max_queries: Maximum queries per pass (capped at MAX_QUERIES).

    Example:
        generator = QueryGenerator(max_queries=6)
        generator.primary("Queen", "Bohemian Rhapsody - Remastered 2011")
        # ('Queen Bohemian Rhapsody official video',
        #  'Queen Bohemian Rhapsody official',
        #  'Queen Bohemian Rhapsody music video',
        #  'Queen Bohemian Rhapsody',
        #  'Bohemian Rhapsody Queen',
        #  'Bohemian Rhapsody official video')
    """

    def __init__(self, max_queries: int = MAX_QUERIES) -> None:
        self.max_queries = max(1, min(max_queries, MAX_QUERIES))

    def generate(self, artist: str, title: str, advanced: bool = False) -> tuple[str, ...]:
        """Return the primary pass, or the advanced pass when advanced=True."""
        if advanced:
            return self.advanced(artist, title)
        return self.primary(artist, title)

    def primary(self, artist: str, title: str) -> tuple[str, ...]:
        a = clean_artist(artist)
        t = clean_title(title)
        queries = [
            f"{a} {t} official video",
            f"{a} {t} official",
            f"{a} {t} music video",
            f"{a} {t}",
            f"{t} {a}",
            f"{t} official video",
        ]
        return _unique(queries, exclude=set(), limit=self.max_queries)

    def advanced(self, artist: str, title: str) -> tuple[str, ...]:
        """
        Broader fallbacks for the retry pass.

        Queries already produced by primary() are never repeated here.
        """
        a = ultra_clean(clean_artist(artist))
        t = ultra_clean(clean_title(title))
        first_word = a.split(" ")[0] if a else ""

        queries = [f'"{a}" "{t}"', f"{first_word} {t}"]
        others = split_artists(artist)
        if len(others) > 1:
            queries.extend(f"{ultra_clean(name)} {t}" for name in others)
        queries.extend([
            f"{t} {a} song",
            f"{t} {a} lyrics",
            f"{a} {t} audio",
            f"{t} by {a}",
            f"{a} - {t}",
            t,
        ])

        already_tried = set(self.primary(artist, title))
        return _unique(queries, exclude=already_tried, limit=self.max_queries)
