"""Filename parsing: cleaned titles, years and episode numbers."""

import posixpath
import re
from dataclasses import dataclass
from typing import Optional


VIDEO_EXTENSIONS = (".mp4", ".mkv", ".avi", ".mov", ".wmv")

# Characters treated as word separators in release names
SEPARATOR_PATTERN = re.compile(r"[.\-_]")

YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")

# Release tags removed from movie titles (resolution, source, codec, audio)
RELEASE_TAG_PATTERN = re.compile(
    r"\b(?:480p|576p|720p|1080p|1080i|2160p|4k|uhd|"
    r"bluray|blu ray|brrip|bdrip|webdl|web dl|webrip|hdtv|dvdrip|remux|"
    r"x264|x265|h264|h265|hevc|avc|xvid|divx|10bit|hdr|hdr10|"
    r"aac|ac3|eac3|dts|ddp|dd5|truehd|atmos)\b",
    re.IGNORECASE,
)

BRACKETED_PATTERN = re.compile(r"[\[({].*?[\])}]")
STRAY_BRACKET_PATTERN = re.compile(r"[\[\](){}]")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Episode conventions, tried in order; the first one that matches wins
EPISODE_PATTERNS = [
    # Show.Name.S01E02
    re.compile(r"^(?P<title>.*)[ ._-]+s(?P<season>\d{1,3})e(?P<episode>\d{1,4})(?!\d)", re.IGNORECASE),
    # Show Name 1x02
    re.compile(r"^(?P<title>.*)[ ._-]+(?P<season>\d{1,2})x(?P<episode>\d{1,3})(?!\d)", re.IGNORECASE),
]


@dataclass
class CleanedTitle:
    """Search query derived from a movie filename."""

    title: str
    year: Optional[int] = None


@dataclass
class ParsedEpisode:
    """Parsed episode information from a filename."""

    show_title: str
    season: int
    episode: int
    year: Optional[int] = None


def _stem(filename: str) -> str:
    base = posixpath.basename(filename.replace("\\", "/"))
    root, ext = posixpath.splitext(base)
    return root if ext else base


def _normalize(text: str) -> str:
    text = SEPARATOR_PATTERN.sub(" ", text)
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def _split_year(text: str) -> tuple[str, Optional[int]]:
    """Cut ``text`` before the first year token that is not at position 0."""
    for match in YEAR_PATTERN.finditer(text):
        if match.start() > 0:
            return text[:match.start()], int(match.group(0))
    return text, None


def clean_title(filename: str) -> CleanedTitle:
    """Turn a release filename into a catalog search query.

    Always returns a result; the title may be empty when nothing useful is
    left after stripping.
    """
    name = SEPARATOR_PATTERN.sub(" ", _stem(filename))
    name, year = _split_year(name)
    name = RELEASE_TAG_PATTERN.sub(" ", name)
    name = BRACKETED_PATTERN.sub(" ", name)
    name = STRAY_BRACKET_PATTERN.sub(" ", name)
    name = WHITESPACE_PATTERN.sub(" ", name).strip()
    return CleanedTitle(title=name, year=year)


def parse_episode(filename: str) -> Optional[ParsedEpisode]:
    """Extract show title, season and episode from a filename.

    Returns None when no episode convention matches, in which case the file
    is treated as a movie.
    """
    name = _stem(filename)

    for pattern in EPISODE_PATTERNS:
        match = pattern.match(name)
        if not match:
            continue

        title, year = _split_year(_normalize(match.group("title")))
        title = STRAY_BRACKET_PATTERN.sub(" ", BRACKETED_PATTERN.sub(" ", title))
        title = WHITESPACE_PATTERN.sub(" ", title).strip()
        if not title:
            continue

        return ParsedEpisode(
            show_title=title,
            season=int(match.group("season")),
            episode=int(match.group("episode")),
            year=year,
        )

    return None


def is_video_file(filename: str) -> bool:
    """Check if a file is a video file."""
    return filename.lower().endswith(VIDEO_EXTENSIONS)
