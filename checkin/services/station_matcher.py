"""Matching of roundel text against the station catalogue"""

import re
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CatalogueStation:
    id: str
    name: str


class StationMatcher(Protocol):
    """Resolves text read off a roundel to a catalogue station"""

    def match(self, text: str, stations: list[CatalogueStation]) -> CatalogueStation | None: ...


def normalize_station_name(name: str) -> str:
    """Lower-case a station name and strip suffixes and punctuation"""
    name = name.lower().strip()
    name = re.sub(r"\s+(underground\s+)?station$", "", name)
    name = re.sub(r"\s+tube\s+station$", "", name)
    name = re.sub(r"[-–—]", " ", name)
    name = name.replace("&", "and")
    name = re.sub(r"['‘’`\"]", "", name)
    name = re.sub(r"[^\w\s]", "", name)
    return re.sub(r"\s+", " ", name).strip()


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1.0 for identical strings, 0.0 for nothing in common"""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein(a, b)) / longest


class CatalogueStationMatcher:
    """Exact, then partial, then fuzzy matching on normalized names"""

    def __init__(self, fuzzy_threshold: float = 0.85):
        self.fuzzy_threshold = fuzzy_threshold

    def match(self, text: str, stations: list[CatalogueStation]) -> CatalogueStation | None:
        wanted = normalize_station_name(text)
        if not wanted:
            return None

        normalized = [(normalize_station_name(s.name), s) for s in stations]

        for name, station in normalized:
            if name == wanted:
                return station

        wanted_words = wanted.split(" ")
        for name, station in normalized:
            words = name.split(" ")
            if wanted in name or all(word in words for word in wanted_words):
                return station

        scored = [(similarity(wanted, name), station) for name, station in normalized]
        scored = [item for item in scored if item[0] >= self.fuzzy_threshold]
        if not scored:
            return None
        return max(scored, key=lambda item: item[0])[1]

    def suggestions(
        self, text: str, stations: list[CatalogueStation], limit: int = 3
    ) -> list[CatalogueStation]:
        """Closest catalogue names for an unmatched read"""
        wanted = normalize_station_name(text)
        scored = [(similarity(wanted, normalize_station_name(s.name)), s) for s in stations]
        scored = sorted((item for item in scored if item[0] > 0.6), key=lambda item: -item[0])
        return [station for _, station in scored[:limit]]
