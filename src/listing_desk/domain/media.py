"""Media attachment values and the bounded, id-keyed collection that holds them."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Protocol

from listing_desk.domain.enums import MediaState
from listing_desk.domain.errors import MediaLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaFile:
    """A file picked by the user. Opaque to the engine beyond these fields."""

    filename: str
    content_type: str
    content: bytes = b""

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class MediaItem:
    key: str
    source: MediaFile | None
    preview: Any = None
    state: MediaState = MediaState.PENDING
    error_message: str | None = None
    full_error_message: str | None = None
    remote_id: str | None = None
    remote_url: str | None = None

    @classmethod
    def existing(cls, url: str, remote_id: str | None = None) -> MediaItem:
        """An already-stored attachment loaded for an edit."""
        return cls(
            key=str(uuid.uuid4()),
            source=None,
            preview=url,
            state=MediaState.APPROVED,
            remote_id=remote_id,
            remote_url=url,
        )

    @property
    def is_new(self) -> bool:
        return self.source is not None

    @property
    def in_progress(self) -> bool:
        return self.state in (MediaState.PENDING, MediaState.CHECKING)


class PreviewRegistry(Protocol):
    """Creates and releases transient display handles for picked files."""

    def create(self, file: MediaFile) -> Any: ...

    def release(self, handle: Any) -> None: ...


class LocalPreviewRegistry:
    """In-process preview handles. Tracks live handles so leaks are visible."""

    def __init__(self) -> None:
        self.live: set[str] = set()
        self.released: list[str] = []

    def create(self, file: MediaFile) -> str:
        handle = f"preview:{uuid.uuid4()}/{file.filename}"
        self.live.add(handle)
        return handle

    def release(self, handle: Any) -> None:
        if handle not in self.live:
            logger.warning("Preview handle %s released twice or never created", handle)
            return
        self.live.discard(handle)
        self.released.append(handle)


@dataclass
class MediaCollection:
    """Ordered, bounded set of media items. First item is the cover.

    Every mutation replaces the whole snapshot, so back-to-back async
    completions never tear each other's updates.
    """

    limit: int
    previews: PreviewRegistry = field(default_factory=LocalPreviewRegistry)
    _items: tuple[MediaItem, ...] = ()

    @property
    def items(self) -> tuple[MediaItem, ...]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def cover(self) -> MediaItem | None:
        return self._items[0] if self._items else None

    def get(self, key: str) -> MediaItem | None:
        for item in self._items:
            if item.key == key:
                return item
        return None

    def add(self, files: Iterable[MediaFile]) -> list[MediaItem]:
        """Append pending items for *files*. All-or-nothing against the bound."""
        files = list(files)
        if len(self._items) + len(files) > self.limit:
            raise MediaLimitError(self.limit, len(self._items), len(files))

        new_items = [
            MediaItem(key=str(uuid.uuid4()), source=f, preview=self.previews.create(f))
            for f in files
        ]
        self._items = self._items + tuple(new_items)
        return new_items

    def load_existing(self, urls: Iterable[str]) -> list[MediaItem]:
        """Seed the collection with stored attachments for an edit."""
        urls = list(urls)
        if len(self._items) + len(urls) > self.limit:
            raise MediaLimitError(self.limit, len(self._items), len(urls))
        items = [MediaItem.existing(u) for u in urls]
        self._items = self._items + tuple(items)
        return items

    def update(self, key: str, **changes) -> MediaItem | None:
        """Replace the item with *key*. Returns None when it is gone."""
        updated: MediaItem | None = None
        snapshot = []
        for item in self._items:
            if item.key == key:
                updated = replace(item, **changes)
                snapshot.append(updated)
            else:
                snapshot.append(item)
        self._items = tuple(snapshot)
        return updated

    def remove(self, key: str) -> bool:
        """Drop an item and release its preview. In-flight requests are not cancelled."""
        item = self.get(key)
        if item is None:
            return False
        self._items = tuple(i for i in self._items if i.key != key)
        if item.is_new and item.preview is not None:
            self.previews.release(item.preview)
        return True

    def clear(self) -> None:
        """Release every preview, e.g. when the form closes."""
        for item in self._items:
            if item.is_new and item.preview is not None:
                self.previews.release(item.preview)
        self._items = ()

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def count(self, *states: MediaState) -> int:
        return sum(1 for i in self._items if i.state in states)

    def approved(self) -> list[MediaItem]:
        return [i for i in self._items if i.state == MediaState.APPROVED]

    def all_approved(self) -> bool:
        return bool(self._items) and all(i.state == MediaState.APPROVED for i in self._items)
