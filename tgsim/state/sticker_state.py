"""
Sticker sets and custom emoji.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("tgsim.sticker_state")

STICKER_TYPES = ("regular", "mask", "custom_emoji")
MAX_STICKERS_PER_SET = 120
DEFAULT_STICKER_SIDE = 512
CUSTOM_EMOJI_SIDE = 100


@dataclass
class StoredStickerSet:
    name: str
    title: str
    sticker_type: str = "regular"
    owner_id: int | None = None
    stickers: list[dict[str, Any]] = field(default_factory=list)
    thumbnail: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "title": self.title,
            "sticker_type": self.sticker_type,
            "stickers": self.stickers,
        }
        if self.thumbnail is not None:
            result["thumbnail"] = self.thumbnail
        return result


class StickerState:
    """Sticker sets by name and custom emoji stickers by custom_emoji_id."""

    def __init__(self) -> None:
        self._sets: dict[str, StoredStickerSet] = {}
        self._custom_emojis: dict[str, dict[str, Any]] = {}
        self._file_counter = 1

    def _make_sticker(
        self,
        set_name: str | None,
        sticker_type: str,
        emoji: str,
        file_id: str | None = None,
        width: int = DEFAULT_STICKER_SIDE,
        height: int = DEFAULT_STICKER_SIDE,
    ) -> dict[str, Any]:
        counter = self._file_counter
        self._file_counter += 1
        sticker: dict[str, Any] = {
            "file_id": file_id or f"sticker_{set_name}_{counter}",
            "file_unique_id": f"unique_sticker_{counter}",
            "type": sticker_type,
            "width": width,
            "height": height,
            "is_animated": False,
            "is_video": False,
            "emoji": emoji,
        }
        if set_name is not None:
            sticker["set_name"] = set_name
        if sticker_type == "custom_emoji":
            custom_emoji_id = f"custom_emoji_{counter}"
            sticker["custom_emoji_id"] = custom_emoji_id
            self._custom_emojis[custom_emoji_id] = sticker
        return sticker

    def create_sticker_set(
        self,
        name: str,
        title: str,
        sticker_type: str = "regular",
        stickers: list[dict[str, Any]] | None = None,
        owner_id: int | None = None,
    ) -> StoredStickerSet | None:
        """Create a set from {emoji, file_id?, width?, height?} items. Names are unique."""
        if name in self._sets:
            return None
        sticker_set = StoredStickerSet(
            name=name,
            title=title,
            sticker_type=sticker_type,
            owner_id=owner_id,
        )
        self._sets[name] = sticker_set
        for item in stickers or []:
            self.add_sticker_to_set(name, **item)
        logger.debug("Created sticker set %s with %d stickers", name, len(sticker_set.stickers))
        return sticker_set

    def get_sticker_set(self, name: str) -> StoredStickerSet | None:
        return self._sets.get(name)

    def has_sticker_set(self, name: str) -> bool:
        return name in self._sets

    def add_sticker_to_set(
        self,
        name: str,
        emoji: str,
        file_id: str | None = None,
        width: int = DEFAULT_STICKER_SIDE,
        height: int = DEFAULT_STICKER_SIDE,
    ) -> dict[str, Any] | None:
        sticker_set = self._sets.get(name)
        if sticker_set is None or len(sticker_set.stickers) >= MAX_STICKERS_PER_SET:
            return None
        sticker = self._make_sticker(name, sticker_set.sticker_type, emoji, file_id, width, height)
        sticker_set.stickers.append(sticker)
        return sticker

    def find_set_by_sticker(self, file_id: str) -> StoredStickerSet | None:
        for sticker_set in self._sets.values():
            if any(s["file_id"] == file_id for s in sticker_set.stickers):
                return sticker_set
        return None

    def delete_sticker_from_set(self, file_id: str) -> bool:
        sticker_set = self.find_set_by_sticker(file_id)
        if sticker_set is None:
            return False
        for sticker in sticker_set.stickers:
            if sticker["file_id"] == file_id:
                sticker_set.stickers.remove(sticker)
                if "custom_emoji_id" in sticker:
                    self._custom_emojis.pop(sticker["custom_emoji_id"], None)
                break
        return True

    def set_sticker_position(self, file_id: str, position: int) -> bool:
        """Move a sticker to a zero-based position within its set."""
        sticker_set = self.find_set_by_sticker(file_id)
        if sticker_set is None or not 0 <= position < len(sticker_set.stickers):
            return False
        stickers = sticker_set.stickers
        index = next(i for i, s in enumerate(stickers) if s["file_id"] == file_id)
        stickers.insert(position, stickers.pop(index))
        return True

    def set_title(self, name: str, title: str) -> bool:
        sticker_set = self._sets.get(name)
        if sticker_set is None:
            return False
        sticker_set.title = title
        return True

    def delete_sticker_set(self, name: str) -> bool:
        sticker_set = self._sets.pop(name, None)
        if sticker_set is None:
            return False
        for sticker in sticker_set.stickers:
            if "custom_emoji_id" in sticker:
                self._custom_emojis.pop(sticker["custom_emoji_id"], None)
        logger.debug("Deleted sticker set %s", name)
        return True

    def register_custom_emoji(self, custom_emoji_id: str, emoji: str) -> dict[str, Any]:
        """Make a custom emoji known outside of any set."""
        if custom_emoji_id in self._custom_emojis:
            return self._custom_emojis[custom_emoji_id]
        counter = self._file_counter
        self._file_counter += 1
        sticker = {
            "file_id": f"custom_emoji_sticker_{counter}",
            "file_unique_id": f"unique_custom_emoji_{counter}",
            "type": "custom_emoji",
            "width": CUSTOM_EMOJI_SIDE,
            "height": CUSTOM_EMOJI_SIDE,
            "is_animated": False,
            "is_video": False,
            "emoji": emoji,
            "custom_emoji_id": custom_emoji_id,
        }
        self._custom_emojis[custom_emoji_id] = sticker
        return sticker

    def get_custom_emoji_stickers(self, custom_emoji_ids: list[str]) -> list[dict[str, Any]]:
        """Known stickers for the ids, in request order; unknown ids are skipped."""
        return [self._custom_emojis[i] for i in custom_emoji_ids if i in self._custom_emojis]

    def all_sticker_sets(self) -> list[StoredStickerSet]:
        return list(self._sets.values())

    def clear(self) -> None:
        self._sets.clear()
        self._custom_emojis.clear()
        self._file_counter = 1
