"""Version ledger: the DAG of audio versions derived from one recording."""

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from src.services.errors import LedgerError, VersionNotFoundError
from src.services.persistence import PersistenceStore

logger = logging.getLogger(__name__)

ROOT_VERSION_ID = "v0"

SOURCE_ORIGINAL = "original"
SOURCE_CHAIN = "chain"
FAMILY_AI_VOICE = "aiVoice"
FAMILY_DUB = "dub"


def ai_voice_source(voice_id: str) -> str:
    return f"{FAMILY_AI_VOICE}-{voice_id}"


def dub_source(language: str) -> str:
    return f"{FAMILY_DUB}-{language}"


def source_family(source: str) -> str:
    """Transform family of a source tag: ``aiVoice-warm`` -> ``aiVoice``."""
    return source.split("-", 1)[0]


@dataclass
class AudioVersionMetadata:
    """Derivation metadata of one version."""

    duration: float
    size: int
    created_at: str
    transform_chain: list[str] = field(default_factory=list)
    language: Optional[str] = None
    voice_id: Optional[str] = None
    voice_name: Optional[str] = None


@dataclass
class AudioVersion:
    """One node of the ledger. The blob is owned by this node alone."""

    id: str
    label: str
    source: str
    blob: bytes
    metadata: AudioVersionMetadata
    parent_version_id: Optional[str] = None
    mime_type: str = "audio/webm"

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_VERSION_ID

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "source": self.source,
            "parent_version_id": self.parent_version_id,
            "mime_type": self.mime_type,
            "blob_b64": base64.b64encode(self.blob).decode("ascii"),
            "metadata": {
                "duration": self.metadata.duration,
                "size": self.metadata.size,
                "created_at": self.metadata.created_at,
                "transform_chain": list(self.metadata.transform_chain),
                "language": self.metadata.language,
                "voice_id": self.metadata.voice_id,
                "voice_name": self.metadata.voice_name,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AudioVersion":
        meta = data["metadata"]
        return cls(
            id=data["id"],
            label=data["label"],
            source=data["source"],
            parent_version_id=data.get("parent_version_id"),
            mime_type=data.get("mime_type", "audio/webm"),
            blob=base64.b64decode(data["blob_b64"]),
            metadata=AudioVersionMetadata(
                duration=meta["duration"],
                size=meta["size"],
                created_at=meta["created_at"],
                transform_chain=list(meta.get("transform_chain", [])),
                language=meta.get("language"),
                voice_id=meta.get("voice_id"),
                voice_name=meta.get("voice_name"),
            ),
        )


def generate_version_id() -> str:
    return f"v{uuid4().hex[:8]}"


def format_chain_entry(source: str, voice_id: Optional[str] = None) -> str:
    """Transform chain step for a source tag."""
    family = source_family(source)
    if family == FAMILY_DUB:
        return f"dub:{source[len(FAMILY_DUB) + 1:]}"
    if family == FAMILY_AI_VOICE:
        return f"voice:{voice_id or source[len(FAMILY_AI_VOICE) + 1:]}"
    return source


def generate_label(
    source: str,
    parent_label: str,
    language: Optional[str] = None,
    voice_name: Optional[str] = None,
) -> str:
    family = source_family(source)
    if source == SOURCE_ORIGINAL:
        return "Original"
    if family == FAMILY_DUB:
        return f"{parent_label} ({language})" if language else f"{parent_label} (Dubbed)"
    if family == FAMILY_AI_VOICE:
        return f"{parent_label} ({voice_name or 'AI Voice'})"
    return parent_label


class VersionLedger:
    """
    Arena of audio versions keyed by id, in insertion order.

    Every mutation validates first, then changes state, then writes one full
    snapshot to the persistence store. Nothing here suspends; callers keep a
    single writer at a time.
    """

    def __init__(self, store: Optional[PersistenceStore] = None, key: str = "ledger"):
        self._store = store
        self._key = key
        self._versions: dict[str, AudioVersion] = {}
        self.active_version_id: str = ""

    # ============== Lifecycle ==============

    @classmethod
    def load(cls, store: PersistenceStore, key: str) -> "VersionLedger":
        """Rehydrate the ledger stored under ``key`` (empty if none)."""
        ledger = cls(store, key)
        snapshot = store.get(key)
        if snapshot:
            ledger.restore(snapshot)
        return ledger

    def restore(self, snapshot: dict) -> None:
        versions = [AudioVersion.from_dict(v) for v in snapshot.get("versions", [])]
        self._versions = {v.id: v for v in versions}
        active = snapshot.get("active_version_id", "")
        if active not in self._versions:
            active = ROOT_VERSION_ID if ROOT_VERSION_ID in self._versions else ""
        self.active_version_id = active

    def snapshot(self) -> dict:
        return {
            "versions": [v.to_dict() for v in self._versions.values()],
            "active_version_id": self.active_version_id,
        }

    def _persist(self) -> None:
        if self._store is not None:
            self._store.set(self._key, self.snapshot())

    def seed(self, blob: bytes, duration: float, mime_type: str = "audio/webm") -> AudioVersion:
        """Start over from a fresh recording; the ledger holds only the root."""
        root = AudioVersion(
            id=ROOT_VERSION_ID,
            label="Original",
            source=SOURCE_ORIGINAL,
            blob=blob,
            mime_type=mime_type,
            metadata=AudioVersionMetadata(
                duration=duration,
                size=len(blob),
                created_at=datetime.now(timezone.utc).isoformat(),
                transform_chain=[],
            ),
        )
        self._versions = {root.id: root}
        self.active_version_id = root.id
        self._persist()
        return root

    def clear(self) -> None:
        self._versions = {}
        self.active_version_id = ""
        if self._store is not None:
            self._store.delete(self._key)

    # ============== Reads ==============

    @property
    def versions(self) -> list[AudioVersion]:
        return list(self._versions.values())

    @property
    def root(self) -> Optional[AudioVersion]:
        return self._versions.get(ROOT_VERSION_ID)

    @property
    def active_version(self) -> Optional[AudioVersion]:
        return self._versions.get(self.active_version_id)

    def __len__(self) -> int:
        return len(self._versions)

    def __contains__(self, version_id: str) -> bool:
        return version_id in self._versions

    def get_version(self, version_id: str) -> Optional[AudioVersion]:
        return self._versions.get(version_id)

    def get_transformable_versions(self) -> list[AudioVersion]:
        return [v for v in self._versions.values() if v.source != SOURCE_CHAIN]

    def _children_index(self) -> dict[str, list[str]]:
        children: dict[str, list[str]] = {}
        for version in self._versions.values():
            if version.parent_version_id is not None:
                children.setdefault(version.parent_version_id, []).append(version.id)
        return children

    def _descendant_ids(self, version_id: str) -> list[str]:
        children = self._children_index()
        found: list[str] = []
        stack = list(children.get(version_id, []))
        while stack:
            current = stack.pop()
            found.append(current)
            stack.extend(children.get(current, []))
        return found

    def get_descendants(self, version_id: str) -> list[AudioVersion]:
        ids = set(self._descendant_ids(version_id))
        return [v for v in self._versions.values() if v.id in ids]

    def has_child_of_family(self, parent_id: str, source_or_family: str) -> bool:
        """
        True when ``parent_id`` already has a direct child of the same kind.

        A full source tag (``dub-pt``) matches that exact tag; a bare family
        (``aiVoice``) matches any child of that family.
        """
        for version in self._versions.values():
            if version.parent_version_id != parent_id:
                continue
            if version.source == source_or_family:
                return True
            if "-" not in source_or_family and source_family(version.source) == source_or_family:
                return True
        return False

    def depth(self, version_id: str) -> int:
        """Number of edges from the root to ``version_id``."""
        version = self._versions.get(version_id)
        if version is None:
            raise VersionNotFoundError(version_id)
        edges = 0
        while version.parent_version_id is not None:
            version = self._versions[version.parent_version_id]
            edges += 1
        return edges

    # ============== Mutations ==============

    def add_version(
        self,
        blob: bytes,
        source: str,
        parent_version_id: str,
        duration: float = 0.0,
        language: Optional[str] = None,
        voice_id: Optional[str] = None,
        voice_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> str:
        """
        Append a version derived from ``parent_version_id``.

        Returns the new id. The active version is left unchanged.

        Raises:
            VersionNotFoundError: parent is not in the ledger
        """
        parent = self._versions.get(parent_version_id)
        if parent is None:
            raise VersionNotFoundError(parent_version_id)

        version_id = generate_version_id()
        while version_id in self._versions:
            version_id = generate_version_id()

        version = AudioVersion(
            id=version_id,
            label=generate_label(source, parent.label, language, voice_name),
            source=source,
            parent_version_id=parent.id,
            blob=blob,
            mime_type=mime_type or parent.mime_type,
            metadata=AudioVersionMetadata(
                duration=duration,
                size=len(blob),
                created_at=datetime.now(timezone.utc).isoformat(),
                transform_chain=[
                    *parent.metadata.transform_chain,
                    format_chain_entry(source, voice_id),
                ],
                language=language,
                voice_id=voice_id,
                voice_name=voice_name,
            ),
        )
        self._versions[version.id] = version
        self._persist()

        logger.info(f"Added version {version.id} ({source}) under {parent.id}")
        return version.id

    def set_active_version(self, version_id: str) -> None:
        if version_id not in self._versions:
            return
        self.active_version_id = version_id
        self._persist()

    def delete_version(self, version_id: str) -> list[str]:
        """
        Delete a version and every version derived from it.

        Returns the removed ids in ledger order.

        Raises:
            LedgerError: attempt to delete the original recording
            VersionNotFoundError: unknown id
        """
        if version_id == ROOT_VERSION_ID:
            raise LedgerError("The original recording cannot be deleted", version_id=version_id)
        if version_id not in self._versions:
            raise VersionNotFoundError(version_id)

        doomed = {version_id, *self._descendant_ids(version_id)}
        deleted = [vid for vid in self._versions if vid in doomed]
        self._versions = {
            vid: version for vid, version in self._versions.items() if vid not in doomed
        }
        if self.active_version_id in doomed:
            self.active_version_id = ROOT_VERSION_ID
        self._persist()

        logger.info(f"Deleted {len(doomed)} version(s) rooted at {version_id}")
        return deleted
