"""
Metadata codec for transcript documents.

The metadata record is stored as key/value rows in the ``metadata`` table.
Each attribute of TranscriptMetadata has exactly one FieldCodec describing
its on-disk key and how its value is encoded to and decoded from text:

    text       stored verbatim
    timestamp  ISO-8601; pre-formatted strings are stored as given
    enum       the enum value
    number     decimal text
    json       canonical JSON, nested timestamps as ISO-8601

Invariants:
    - FIELD_CODECS covers every TranscriptMetadata attribute (checked at import)
    - Unset (None) attributes are never written, so a partial save never
      clears unrelated keys
    - An update writes only fields whose encoded value actually changed

How to change safely:
    - Add the attribute to TranscriptMetadata and a FieldCodec here together
    - Never change the key of an existing codec; old documents use it
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, fields
from datetime import datetime
from difflib import get_close_matches
from typing import Any

from ..errors import UnknownFieldError
from ..serialization import format_timestamp, from_json, now_timestamp, parse_timestamp, to_json
from ..storage.database import Database
from ..types import (
    MetadataChange,
    RoutingMetadata,
    StatusTransition,
    Task,
    TranscriptEntities,
    TranscriptMetadata,
    TranscriptStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldCodec:
    """Encoding rules for one metadata attribute.

    Attributes:
        attr: Attribute name on TranscriptMetadata
        key: Key in the metadata table
        encode: Python value -> stored text
        decode: Stored text -> Python value
    """

    attr: str
    key: str
    encode: Callable[[Any], str]
    decode: Callable[[str], Any]


def _encode_text(value: Any) -> str:
    return str(value)


def _decode_text(text: str) -> str:
    return text


def _encode_timestamp(value: datetime | str) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return str(value)


def _decode_timestamp(text: str) -> datetime | str:
    try:
        return parse_timestamp(text)
    except ValueError:
        logger.debug(f"Keeping non-ISO timestamp as text: {text!r}")
        return text


def _encode_status(value: TranscriptStatus | str) -> str:
    return TranscriptStatus(value).value


def _encode_number(value: float | int | str) -> str:
    return repr(float(value))


def _encode_tags(value: Iterable[str]) -> str:
    return to_json(list(value))


def _decode_tags(text: str) -> list[str]:
    return list(from_json(text))


def _coerce(cls: Any, value: Any) -> Any:
    return value if isinstance(value, cls) else cls.from_dict(value)


def _encode_routing(value: RoutingMetadata | Mapping[str, Any]) -> str:
    return to_json(_coerce(RoutingMetadata, value))


def _decode_routing(text: str) -> RoutingMetadata:
    return RoutingMetadata.from_dict(from_json(text))


def _encode_history(value: Iterable[StatusTransition | Mapping[str, Any]]) -> str:
    return to_json([_coerce(StatusTransition, item) for item in value])


def _decode_history(text: str) -> list[StatusTransition]:
    return [StatusTransition.from_dict(item) for item in from_json(text)]


def _encode_tasks(value: Iterable[Task | Mapping[str, Any]]) -> str:
    return to_json([_coerce(Task, item) for item in value])


def _decode_tasks(text: str) -> list[Task]:
    return [Task.from_dict(item) for item in from_json(text)]


def _encode_entities(value: TranscriptEntities | Mapping[str, Any]) -> str:
    return to_json(_coerce(TranscriptEntities, value))


def _decode_entities(text: str) -> TranscriptEntities:
    return TranscriptEntities.from_dict(from_json(text))


def _text(attr: str, key: str | None = None) -> FieldCodec:
    return FieldCodec(attr, key or attr, _encode_text, _decode_text)


# Ordered as written by save(); keys are the established on-disk names
FIELD_CODECS: dict[str, FieldCodec] = {
    codec.attr: codec
    for codec in (
        _text("id"),
        _text("title"),
        FieldCodec("date", "date", _encode_timestamp, _decode_timestamp),
        _text("recording_time", "recordingTime"),
        _text("duration"),
        _text("project"),
        _text("project_id", "projectId"),
        FieldCodec("tags", "tags", _encode_tags, _decode_tags),
        FieldCodec("confidence", "confidence", _encode_number, float),
        FieldCodec("routing", "routing", _encode_routing, _decode_routing),
        FieldCodec("status", "status", _encode_status, TranscriptStatus),
        FieldCodec("history", "history", _encode_history, _decode_history),
        FieldCodec("tasks", "tasks", _encode_tasks, _decode_tasks),
        FieldCodec("entities", "entities", _encode_entities, _decode_entities),
        _text("error_details", "errorDetails"),
        _text("audio_file", "audioFile"),
        _text("audio_hash", "audioHash"),
    )
}

_CODECS_BY_KEY: dict[str, FieldCodec] = {codec.key: codec for codec in FIELD_CODECS.values()}

_missing = {f.name for f in fields(TranscriptMetadata)} ^ set(FIELD_CODECS)
if _missing:
    raise RuntimeError(f"Metadata codecs out of sync with TranscriptMetadata: {sorted(_missing)}")


def resolve_field(name: str) -> FieldCodec:
    """Look up a codec by attribute name or on-disk key.

    Raises:
        UnknownFieldError: If the name is not a metadata field
    """
    codec = FIELD_CODECS.get(name) or _CODECS_BY_KEY.get(name)
    if codec is None:
        suggestions = get_close_matches(name, list(FIELD_CODECS), n=3)
        raise UnknownFieldError(name, suggestions)
    return codec


_UPSERT = "INSERT OR REPLACE INTO metadata (key, value, updated_at) VALUES (?, ?, ?)"


class MetadataCodec:
    """Reads and writes the metadata record of a document.

    The codec never writes the audit log itself; update() returns the list of
    changes and the caller decides what to record.

    Example:
        >>> codec = MetadataCodec(db)
        >>> codec.save(TranscriptMetadata(id=str(uuid.uuid4()), title="Standup"))
        >>> changes = codec.update({"title": "Daily standup"})
        >>> [c.field for c in changes]
        ['title']
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def save(self, metadata: TranscriptMetadata) -> None:
        """Persist every set attribute of a record.

        Args:
            metadata: Record to save; None attributes are skipped
        """
        now = now_timestamp()
        written = []
        with self.db.transaction() as conn:
            for codec in FIELD_CODECS.values():
                value = getattr(metadata, codec.attr)
                if value is None:
                    continue
                conn.execute(_UPSERT, (codec.key, codec.encode(value), now))
                written.append(codec.key)

        logger.debug("Saved metadata", extra={"keys": written})

    def _read_rows(self) -> dict[str, str]:
        cursor = self.db.execute("SELECT key, value FROM metadata")
        return {row["key"]: row["value"] for row in cursor.fetchall()}

    @staticmethod
    def _decode_rows(rows: Mapping[str, str]) -> TranscriptMetadata:
        values: dict[str, Any] = {}
        for codec in FIELD_CODECS.values():
            text = rows.get(codec.key)
            if text is None:
                continue
            # Empty text only means something for plain string fields
            if text == "" and codec.decode is not _decode_text:
                continue
            values[codec.attr] = codec.decode(text)
        return TranscriptMetadata(**values)

    def load(self) -> TranscriptMetadata:
        """Read the metadata record.

        If the document has no 'id' key (documents written before
        generation 2), a fresh identity is synthesized for the returned record
        only; use ensure_identity() to persist one.
        """
        metadata = self._decode_rows(self._read_rows())
        if not metadata.id:
            metadata.id = str(uuid.uuid4())
        return metadata

    def ensure_identity(self) -> str:
        """Persist an identity if the document lacks one.

        Returns:
            The stored identity (existing or newly generated)
        """
        with self.db.transaction() as conn:
            row = conn.execute("SELECT value FROM metadata WHERE key = 'id'").fetchone()
            if row is not None and row["value"]:
                return row["value"]

            identity = str(uuid.uuid4())
            conn.execute(_UPSERT, ("id", identity, now_timestamp()))

        logger.info("Backfilled transcript identity", extra={"id": identity})
        return identity

    def update(
        self,
        updates: TranscriptMetadata | Mapping[str, Any],
    ) -> list[MetadataChange]:
        """Write the fields whose value differs from what is stored.

        Args:
            updates: A partial record, or a mapping of attribute name (or
                on-disk key) to new value. None values are ignored.

        Returns:
            Changes in the order given, keyed by on-disk field name

        Raises:
            UnknownFieldError: If a mapping key is not a metadata field
        """
        if isinstance(updates, TranscriptMetadata):
            items = [(f.name, getattr(updates, f.name)) for f in fields(TranscriptMetadata)]
        else:
            items = list(updates.items())

        resolved = [(resolve_field(name), value) for name, value in items if value is not None]

        changes: list[MetadataChange] = []
        now = now_timestamp()
        with self.db.transaction() as conn:
            rows = self._read_rows()
            current = self._decode_rows(rows)
            for codec, new_value in resolved:
                old_value = getattr(current, codec.attr)
                encoded = codec.encode(new_value)
                # Re-encoding the old value keeps legacy key order or number
                # formatting from registering as a change
                if rows.get(codec.key) == encoded or (
                    old_value is not None and codec.encode(old_value) == encoded
                ):
                    continue

                changes.append(MetadataChange(codec.key, old_value, new_value))
                conn.execute(_UPSERT, (codec.key, encoded, now))
                rows[codec.key] = encoded
                setattr(current, codec.attr, new_value)

        if changes:
            logger.debug("Updated metadata", extra={"fields": [c.field for c in changes]})
        return changes

    def get_value(self, key: str) -> str | None:
        """Raw stored text of one metadata key."""
        row = self.db.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def delete_key(self, key: str) -> bool:
        """Delete one metadata key.

        Returns:
            True if a row existed and was removed
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM metadata WHERE key = ?", (key,))
        return cursor.rowcount > 0
