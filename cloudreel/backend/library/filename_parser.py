"""Utilities to interpret episode filenames into season/episode numbers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from guessit import guessit

_SXE_RE = re.compile(r"s(?P<season>\d{1,3})[\s._-]*e(?P<episode>\d{1,4})", re.IGNORECASE)
_NXN_RE = re.compile(r"(?<!\d)(?P<season>\d{1,2})x(?P<episode>\d{1,3})(?!\d)", re.IGNORECASE)
_EPISODE_WORD_RE = re.compile(r"\b(?:episode|ep|e)[\s._-]*(?P<episode>\d{1,4})\b", re.IGNORECASE)
_SEASON_WORD_RE = re.compile(r"\b(?:season|series|s)[\s._-]*(?P<season>\d{1,3})\b", re.IGNORECASE)
_TITLE_SANITIZE_RE = re.compile(r"[._]+")
_SPACES_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParsedEpisode:
    """Season/episode numbers extracted from a filename; either may be missing."""

    season: Optional[int] = None
    episode: Optional[int] = None


def parse_episode_name(filename: str) -> ParsedEpisode:
    """Read season/episode markers (``S01E02``, ``1x02``, ``Episode 2``) from a filename.

    Explicit markers win; guessit is consulted only when none of them match.
    """

    stem = strip_extension(filename)

    match = _SXE_RE.search(stem) or _NXN_RE.search(stem)
    if match:
        return ParsedEpisode(season=int(match.group("season")), episode=int(match.group("episode")))

    match = _EPISODE_WORD_RE.search(stem)
    if match:
        season_match = _SEASON_WORD_RE.search(stem)
        season = int(season_match.group("season")) if season_match else None
        return ParsedEpisode(season=season, episode=int(match.group("episode")))

    details = guessit(filename, {"type": "episode"})
    return ParsedEpisode(
        season=_coerce_int(details.get("season")),
        episode=_coerce_int(details.get("episode")),
    )


def parse_season_label(label: str) -> Optional[int]:
    """Season number from a folder label such as ``Season 02`` or ``S2``."""

    match = _SEASON_WORD_RE.search(label)
    if match:
        return int(match.group("season"))
    stripped = label.strip()
    return int(stripped) if stripped.isdigit() else None


def strip_extension(filename: str) -> str:
    dot = filename.rfind(".")
    return filename[:dot] if dot > 0 else filename


def clean_title(value: str) -> str:
    """Turn ``Some.Movie_Name`` into ``Some Movie Name``."""

    text = _TITLE_SANITIZE_RE.sub(" ", value)
    return _SPACES_RE.sub(" ", text).strip()


def _coerce_int(value: object) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (list, tuple)):
        for entry in value:
            candidate = _coerce_int(entry)
            if candidate is not None:
                return candidate
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


__all__ = ["ParsedEpisode", "clean_title", "parse_episode_name", "parse_season_label", "strip_extension"]
