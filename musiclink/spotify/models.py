"""Catalog entities and their decoders.

Every entity class carries an ``item_type`` tag and a ``from_json`` decoder.
Classes listed in ``LIBRARY_ITEMS`` can also be read from the user's library.
Decoders raise ``KeyError``/``TypeError``/``ValueError`` on malformed payloads.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar

from .constants import ItemType

ItemT = TypeVar("ItemT", bound="CatalogItem")


class CatalogItem:
    item_type: ClassVar[ItemType]

    @classmethod
    def from_json(cls: Type[ItemT], data: Mapping[str, Any]) -> ItemT:
        raise NotImplementedError


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"expected a JSON object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class Artist(CatalogItem):
    item_type: ClassVar[ItemType] = ItemType.ARTIST

    id: str
    name: str
    uri: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    popularity: Optional[int] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "Artist":
        data = _require_mapping(data)
        return cls(
            id=data["id"],
            name=data["name"],
            uri=data.get("uri"),
            genres=list(data.get("genres") or []),
            popularity=data.get("popularity"),
        )


@dataclass(frozen=True)
class Album(CatalogItem):
    item_type: ClassVar[ItemType] = ItemType.ALBUM

    id: str
    name: str
    uri: Optional[str] = None
    artists: List[Artist] = field(default_factory=list)
    release_date: Optional[str] = None
    total_tracks: Optional[int] = None
    images: List[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "Album":
        data = _require_mapping(data)
        return cls(
            id=data["id"],
            name=data["name"],
            uri=data.get("uri"),
            artists=[Artist.from_json(a) for a in data.get("artists") or []],
            release_date=data.get("release_date"),
            total_tracks=data.get("total_tracks"),
            images=[img["url"] for img in data.get("images") or [] if img.get("url")],
        )


@dataclass(frozen=True)
class Track(CatalogItem):
    item_type: ClassVar[ItemType] = ItemType.TRACK

    id: str
    name: str
    uri: Optional[str] = None
    artists: List[Artist] = field(default_factory=list)
    album: Optional[Album] = None
    duration_ms: int = 0
    explicit: bool = False
    popularity: Optional[int] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "Track":
        data = _require_mapping(data)
        album = data.get("album")
        return cls(
            id=data["id"],
            name=data["name"],
            uri=data.get("uri"),
            artists=[Artist.from_json(a) for a in data.get("artists") or []],
            album=Album.from_json(album) if album else None,
            duration_ms=int(data.get("duration_ms") or 0),
            explicit=bool(data.get("explicit", False)),
            popularity=data.get("popularity"),
        )

    @property
    def artist_names(self) -> str:
        return ", ".join(a.name for a in self.artists)


@dataclass(frozen=True)
class Playlist(CatalogItem):
    item_type: ClassVar[ItemType] = ItemType.PLAYLIST

    id: str
    name: str
    uri: Optional[str] = None
    owner_id: Optional[str] = None
    description: Optional[str] = None
    tracks_total: Optional[int] = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "Playlist":
        data = _require_mapping(data)
        owner = data.get("owner") or {}
        tracks = data.get("tracks") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            uri=data.get("uri"),
            owner_id=owner.get("id"),
            description=data.get("description") or None,
            tracks_total=tracks.get("total"),
        )


SEARCH_ITEMS: Dict[ItemType, Type[CatalogItem]] = {
    cls.item_type: cls for cls in (Track, Album, Artist, Playlist)
}

LIBRARY_ITEMS: Dict[ItemType, Type[CatalogItem]] = {
    cls.item_type: cls for cls in (Track, Album, Playlist)
}


def decode_search(item_cls: Type[ItemT], payload: Any) -> List[ItemT]:
    """Items of a search response: ``{"<type>s": {"items": [...]}}``."""
    page = _require_mapping(payload)[item_cls.item_type.plural]
    return [item_cls.from_json(item) for item in _require_mapping(page).get("items") or []]


def decode_library(item_cls: Type[ItemT], payload: Any) -> List[ItemT]:
    """Items of a library page; saved tracks and albums come wrapped with ``added_at``."""
    key = item_cls.item_type.value
    out: List[ItemT] = []
    for entry in _require_mapping(payload).get("items") or []:
        entry = _require_mapping(entry)
        inner = entry.get(key)
        out.append(item_cls.from_json(inner if isinstance(inner, Mapping) else entry))
    return out
