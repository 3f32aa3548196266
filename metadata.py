"""File metadata lookup: storage kind, header length and delimited-read settings.

A metadata store answers ``get_attribute(path, name) -> str`` for a logical file.
Two stores are provided:
  - InMemoryMetadataStore  -> dict keyed by path (fixtures, programmatic use)
  - SidecarMetadataStore   -> JSON object stored beside the file (``<path>.meta.json``)

``resolve_file_metadata`` reads the attributes it needs in a single call so that
one invocation always sees a consistent snapshot.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

KIND_ATTRIBUTE = "kind"
HEADER_LENGTH_ATTRIBUTE = "headerLength"
SEPARATOR_ATTRIBUTE = "separator"
QUOTE_ATTRIBUTE = "quote"
LAYOUT_ATTRIBUTE = "layout"

_RESOLVED_ATTRIBUTES = (
    KIND_ATTRIBUTE,
    HEADER_LENGTH_ATTRIBUTE,
    SEPARATOR_ATTRIBUTE,
    QUOTE_ATTRIBUTE,
)

_EDGE_NOISE = re.compile(r"^[\s\x00-\x1f\x7f]+|[\s\x00-\x1f\x7f]+$")


class ResolutionError(Exception):
    """Raised when file metadata cannot be looked up."""

    pass


@dataclass(frozen=True)
class FileMetadata:
    kind: str
    header_lines: int = 0
    separator: Optional[str] = None
    quote: Optional[str] = None


class MetadataStore:
    """Key-value attribute lookup keyed by file path."""

    def get_attribute(self, path: str, name: str) -> str:
        raise NotImplementedError

    def get_attributes(self, path: str, names: Iterable[str]) -> Dict[str, str]:
        return {name: self.get_attribute(path, name) for name in names}


class InMemoryMetadataStore(MetadataStore):
    def __init__(self, attributes: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._attributes: Dict[str, Dict[str, Any]] = {
            str(path): dict(attrs) for path, attrs in (attributes or {}).items()
        }

    def get_attribute(self, path: str, name: str) -> str:
        try:
            attrs = self._attributes[str(path)]
        except KeyError:
            raise ResolutionError(f"No metadata recorded for {path}") from None
        value = attrs.get(name)
        return "" if value is None else str(value)


class SidecarMetadataStore(MetadataStore):
    """Reads attributes from a JSON object stored next to the data file.

    A data file without a sidecar is an unclassified file: every attribute is
    the empty string. A missing data file or an unreadable sidecar is a
    resolution failure.
    """

    def __init__(self, suffix: str = ".meta.json"):
        self.suffix = suffix

    def sidecar_path(self, path: str) -> Path:
        p = Path(path)
        return p.with_name(p.name + self.suffix)

    def _load(self, path: str) -> Dict[str, Any]:
        if not Path(path).is_file():
            raise ResolutionError(f"File not found: {path}")
        sidecar = self.sidecar_path(path)
        if not sidecar.exists():
            logger.debug(f"No metadata sidecar for {path}")
            return {}
        try:
            data = json.loads(sidecar.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ResolutionError(f"Unreadable metadata sidecar {sidecar}: {e}") from e
        if not isinstance(data, dict):
            raise ResolutionError(
                f"Metadata sidecar {sidecar} must hold a JSON object, got {type(data).__name__}"
            )
        return data

    def get_attribute(self, path: str, name: str) -> str:
        return self.get_attributes(path, [name])[name]

    def get_attributes(self, path: str, names: Iterable[str]) -> Dict[str, str]:
        data = self._load(path)
        try:
            return {name: _attribute_text(name, data.get(name)) for name in names}
        except (KeyError, TypeError) as e:
            raise ResolutionError(
                f"Malformed layout in metadata sidecar {self.sidecar_path(path)}: "
                "every field needs a name and a type"
            ) from e


def _attribute_text(name: str, value: Any) -> str:
    if value is None:
        return ""
    if name == LAYOUT_ATTRIBUTE and isinstance(value, list):
        # [{"name": "id", "type": "UNSIGNED4"}, ...] -> record definition text
        fields = "; ".join(f"{f['type']} {f['name']}" for f in value)
        return f"RECORD {fields}; END;" if fields else ""
    return str(value)


def clean_kind(raw: str) -> str:
    """Trim surrounding whitespace and control characters from a kind value."""
    return _EDGE_NOISE.sub("", raw or "")


def parse_header_lines(raw: str) -> int:
    """Parse an unsigned header-line count; absent or unparsable values give 0."""
    text = clean_kind(raw)
    if not (text.isascii() and text.isdigit()):
        if text:
            logger.debug(f"Ignoring unparsable header length {raw!r}")
        return 0
    return int(text)


def resolve_file_metadata(path: str, store: MetadataStore) -> FileMetadata:
    """Look up kind, header length and delimited-read settings for ``path``."""
    try:
        attrs = store.get_attributes(path, _RESOLVED_ATTRIBUTES)
    except ResolutionError:
        raise
    except Exception as e:
        raise ResolutionError(f"Metadata lookup failed for {path}: {e}") from e

    metadata = FileMetadata(
        kind=clean_kind(attrs.get(KIND_ATTRIBUTE, "")),
        header_lines=parse_header_lines(attrs.get(HEADER_LENGTH_ATTRIBUTE, "")),
        separator=attrs.get(SEPARATOR_ATTRIBUTE) or None,
        quote=attrs.get(QUOTE_ATTRIBUTE) or None,
    )
    logger.debug(
        f"Resolved metadata for {path}: kind={metadata.kind!r} "
        f"header_lines={metadata.header_lines}"
    )
    return metadata
