"""
Stored files for media messages, getFile and downloads.

Files are modeled to the level a bot can observe: identifiers, sizes,
dimensions and durations. Uploaded bytes are kept when given so the web
transport can serve them back; identical content shares one file_unique_id.
"""
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any

from tgsim.clock import Clock

logger = logging.getLogger("tgsim.file_state")

MB = 1024 * 1024

MAX_FILE_SIZES: dict[str, int] = {
    "photo": 10 * MB,
    "document": 50 * MB,
    "audio": 50 * MB,
    "video": 50 * MB,
    "voice": 50 * MB,
    "video_note": 50 * MB,
    "animation": 50 * MB,
    "sticker": 512 * 1024,
}

DEFAULT_MIME_TYPES: dict[str, str] = {
    "audio": "audio/mpeg",
    "video": "video/mp4",
    "voice": "audio/ogg",
    "animation": "video/mp4",
    "document": "application/octet-stream",
}

THUMBNAIL_SIDE = 90
MEDIUM_SIDE = 320
LARGE_SIDE = 800


def max_file_size(file_type: str) -> int:
    return MAX_FILE_SIZES.get(file_type, 50 * MB)


@dataclass
class StoredFile:
    """One stored file; photo sizes are separate files sharing a base id."""

    file_id: str
    file_unique_id: str
    file_type: str
    uploaded_at: int
    file_size: int | None = None
    mime_type: str | None = None
    file_name: str | None = None
    content: bytes | None = None
    width: int | None = None
    height: int | None = None
    duration: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def file_path(self) -> str:
        return f"{self.file_type}s/{self.file_id}"

    def to_file(self) -> dict[str, Any]:
        """File wire object returned by getFile."""
        result: dict[str, Any] = {
            "file_id": self.file_id,
            "file_unique_id": self.file_unique_id,
            "file_path": self.file_path,
        }
        if self.file_size is not None:
            result["file_size"] = self.file_size
        return result


class FileState:
    """Stored files by file_id, with a file_unique_id index."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._files: dict[str, StoredFile] = {}
        self._by_unique_id: dict[str, str] = {}
        self._by_path: dict[str, str] = {}
        self._file_counter = 1

    def _next_file_id(self, prefix: str) -> str:
        file_id = f"{prefix}_{self._file_counter}"
        self._file_counter += 1
        return file_id

    @staticmethod
    def _unique_id_for(file_id: str, content: bytes | None) -> str:
        if content:
            return "unique_" + hashlib.sha1(content).hexdigest()[:16]
        return f"unique_{file_id}"

    def store_file(
        self,
        file_type: str,
        file_id: str | None = None,
        content: bytes | None = None,
        file_size: int | None = None,
        mime_type: str | None = None,
        file_name: str | None = None,
        width: int | None = None,
        height: int | None = None,
        duration: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StoredFile:
        """Store a file; re-uploading identical bytes returns the existing file."""
        if content and file_id is None:
            existing_id = self._by_unique_id.get(self._unique_id_for("", content))
            existing = self._files.get(existing_id) if existing_id else None
            if existing is not None and existing.file_type == file_type:
                logger.debug("Reusing %s for identical upload", existing.file_id)
                return existing

        file_id = file_id or self._next_file_id(file_type)
        stored = StoredFile(
            file_id=file_id,
            file_unique_id=self._unique_id_for(file_id, content),
            file_type=file_type,
            uploaded_at=self._clock.now(),
            file_size=file_size if file_size is not None else (len(content) if content else None),
            mime_type=mime_type or DEFAULT_MIME_TYPES.get(file_type),
            file_name=file_name,
            content=content,
            width=width,
            height=height,
            duration=duration,
            metadata=metadata or {},
        )
        self._files[file_id] = stored
        self._by_unique_id.setdefault(stored.file_unique_id, file_id)
        self._by_path[stored.file_path] = file_id
        logger.debug("Stored %s %s (%s bytes)", file_type, file_id, stored.file_size)
        return stored

    def store_photo(
        self,
        width: int = 1280,
        height: int = 720,
        content: bytes | None = None,
        file_size: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Store a photo as its family of sizes, smallest first.

        A 90px thumbnail always exists; 320px and 800px variants are added when
        the original is larger than them. The original comes last.
        """
        base_id = self._next_file_id("photo")
        longest = max(width, height, 1)
        sizes: list[dict[str, Any]] = []

        variants = [("thumb", min(THUMBNAIL_SIDE / longest, 1))]
        if longest > MEDIUM_SIDE:
            variants.append(("med", MEDIUM_SIDE / longest))
        if longest > LARGE_SIDE:
            variants.append(("large", LARGE_SIDE / longest))

        for suffix, scale in variants:
            stored = self.store_file(
                "photo",
                file_id=f"{base_id}_{suffix}",
                width=round(width * scale),
                height=round(height * scale),
                file_size=round(file_size * scale * scale) if file_size else None,
                metadata={"base_id": base_id},
            )
            sizes.append(self.photo_size(stored))

        original = self.store_file(
            "photo",
            file_id=base_id,
            content=content,
            width=width,
            height=height,
            file_size=file_size,
            metadata={"base_id": base_id},
        )
        sizes.append(self.photo_size(original))
        return sizes

    @staticmethod
    def photo_size(stored: StoredFile) -> dict[str, Any]:
        size: dict[str, Any] = {
            "file_id": stored.file_id,
            "file_unique_id": stored.file_unique_id,
            "width": stored.width or 0,
            "height": stored.height or 0,
        }
        if stored.file_size is not None:
            size["file_size"] = stored.file_size
        return size

    def to_media(self, stored: StoredFile) -> dict[str, Any]:
        """Wire object for a non-photo file (Document, Audio, Video, ...)."""
        media: dict[str, Any] = {
            "file_id": stored.file_id,
            "file_unique_id": stored.file_unique_id,
        }
        if stored.file_type == "video_note":
            media["length"] = stored.width or 240
            media["duration"] = stored.duration or 0
        elif stored.file_type in ("video", "animation"):
            media["width"] = stored.width or 640
            media["height"] = stored.height or 480
            media["duration"] = stored.duration or 0
        elif stored.file_type in ("audio", "voice"):
            media["duration"] = stored.duration or 0
        if stored.file_type in ("audio", "document", "video", "animation") and stored.file_name:
            media["file_name"] = stored.file_name
        if stored.file_type != "video_note" and stored.mime_type:
            media["mime_type"] = stored.mime_type
        if stored.file_size is not None:
            media["file_size"] = stored.file_size
        for key in ("performer", "title"):
            if stored.metadata.get(key):
                media[key] = stored.metadata[key]
        return media

    def get_file(self, file_id: str) -> StoredFile | None:
        return self._files.get(file_id)

    def get_photo_family(self, file_id: str) -> list[dict[str, Any]]:
        """All sizes of the photo file_id belongs to, smallest first."""
        stored = self._files.get(file_id)
        if stored is None or stored.file_type != "photo":
            return []
        base_id = stored.metadata.get("base_id", file_id)
        family = [
            f for f in self._files.values()
            if f.file_type == "photo" and f.metadata.get("base_id", f.file_id) == base_id
        ]
        family.sort(key=lambda f: (f.width or 0) * (f.height or 0))
        return [self.photo_size(f) for f in family]

    def get_file_by_unique_id(self, file_unique_id: str) -> StoredFile | None:
        file_id = self._by_unique_id.get(file_unique_id)
        return self._files.get(file_id) if file_id else None

    def get_file_by_path(self, file_path: str) -> StoredFile | None:
        file_id = self._by_path.get(file_path)
        return self._files.get(file_id) if file_id else None

    def has_file(self, file_id: str) -> bool:
        return file_id in self._files

    def delete_file(self, file_id: str) -> bool:
        stored = self._files.pop(file_id, None)
        if stored is None:
            return False
        if self._by_unique_id.get(stored.file_unique_id) == file_id:
            del self._by_unique_id[stored.file_unique_id]
        self._by_path.pop(stored.file_path, None)
        return True

    def get_files_by_type(self, file_type: str) -> list[StoredFile]:
        return [f for f in self._files.values() if f.file_type == file_type]

    def total_storage_used(self) -> int:
        return sum(f.file_size or 0 for f in self._files.values())

    def clear(self) -> None:
        self._files.clear()
        self._by_unique_id.clear()
        self._by_path.clear()
        self._file_counter = 1
