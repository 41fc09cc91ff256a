"""
genre_index.py

Fixed two-way mapping between genre names and TMDB genre ids.

Name lookups are case-insensitive but do not strip whitespace, so " action"
is unknown while "ACTION" resolves. Names are stored the way TMDB spells them
in detail payloads, so names mapped from ids match names read from details.
Several names may share an id ("Science Fiction" and "Sci-Fi" are both 878);
the reverse lookup returns the first alias in table order.
"""
from types import MappingProxyType
from typing import Dict, Iterable, Optional, Tuple

GENRE_TABLE: Tuple[Tuple[str, int], ...] = (
    ("Action", 28),
    ("Adventure", 12),
    ("Animation", 16),
    ("Comedy", 35),
    ("Crime", 80),
    ("Documentary", 99),
    ("Drama", 18),
    ("Family", 10751),
    ("Fantasy", 14),
    ("History", 36),
    ("Horror", 27),
    ("Music", 10402),
    ("Mystery", 9648),
    ("Romance", 10749),
    ("Science Fiction", 878),
    ("Sci-Fi", 878),
    ("TV Movie", 10770),
    ("Thriller", 53),
    ("War", 10752),
    ("Western", 37),
)


class GenreIndex:
    """Immutable genre lookup table."""

    def __init__(self, table: Iterable[Tuple[str, int]] = GENRE_TABLE):
        entries: Dict[str, int] = {}
        by_name: Dict[str, int] = {}
        by_id: Dict[int, str] = {}
        for name, genre_id in table:
            key = name.casefold()
            if key in by_name:
                continue
            entries[name] = genre_id
            by_name[key] = genre_id
            # first alias wins for reverse lookups
            by_id.setdefault(genre_id, name)
        self._entries = MappingProxyType(entries)
        self._by_name = MappingProxyType(by_name)
        self._by_id = MappingProxyType(by_id)

    def id_for(self, name: Optional[str]) -> Optional[int]:
        if not name or not name.strip():
            return None
        return self._by_name.get(name.casefold())

    def name_for(self, genre_id: int) -> Optional[str]:
        return self._by_id.get(genre_id)

    def all_entries(self) -> Dict[str, int]:
        return dict(self._entries)

    def names_for(self, genre_ids: Iterable[int]) -> list:
        """Map catalog genre ids to names, dropping ids the table does not know."""
        names = []
        for genre_id in genre_ids or []:
            name = self.name_for(genre_id)
            if name is not None:
                names.append(name)
        return names


GENRE_INDEX = GenreIndex()
