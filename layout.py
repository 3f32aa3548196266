"""Record layouts: ordered (field name, field type) lists and how to resolve them.

Layouts are written as record definitions, e.g.::

    RECORD
        UNSIGNED4 customer_id;
        STRING20 name;
    END;

or in the inline form ``{UNSIGNED4 customer_id, STRING20 name}``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import pandas as pd

from .metadata import (
    HEADER_LENGTH_ATTRIBUTE,
    KIND_ATTRIBUTE,
    LAYOUT_ATTRIBUTE,
    QUOTE_ATTRIBUTE,
    SEPARATOR_ATTRIBUTE,
    FileMetadata,
    MetadataStore,
    clean_kind,
    parse_header_lines,
)

logger = logging.getLogger(__name__)

_IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_]*"
_FIELD_PATTERN = re.compile(rf"^({_IDENTIFIER})\s+({_IDENTIFIER})$")
_RECORD_BLOCK = re.compile(r"^RECORD\b(.*)\bEND\s*;?$", re.IGNORECASE | re.DOTALL)
_BRACE_BLOCK = re.compile(r"^\{(.*)\}$", re.DOTALL)


class LayoutError(ValueError):
    """Raised when a record layout is missing, malformed or does not fit the data."""

    pass


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: str


@dataclass(frozen=True)
class RecordLayout:
    fields: Tuple[FieldDef, ...]

    def __iter__(self) -> Iterator[FieldDef]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    @classmethod
    def of(cls, *pairs: Tuple[str, str]) -> "RecordLayout":
        return cls(tuple(FieldDef(name, type_.upper()) for name, type_ in pairs))

    def to_definition(self) -> str:
        body = "".join(f"    {f.type} {f.name};\n" for f in self.fields)
        return f"RECORD\n{body}END;"


def parse_record_definition(text: str) -> RecordLayout:
    """Parse a ``RECORD ... END;`` or ``{...}`` definition into a RecordLayout."""
    source = (text or "").strip()
    match = _RECORD_BLOCK.match(source) or _BRACE_BLOCK.match(source)
    if not match:
        raise LayoutError(f"Not a record definition: {text!r}")

    fields: List[FieldDef] = []
    seen = set()
    for entry in re.split(r"[;,]", match.group(1)):
        entry = " ".join(entry.split())
        if not entry:
            continue
        m = _FIELD_PATTERN.match(entry)
        if not m:
            raise LayoutError(f"Malformed field declaration: {entry!r}")
        type_, name = m.group(1).upper(), m.group(2)
        if name.lower() in seen:
            raise LayoutError(f"Duplicate field name: {name}")
        seen.add(name.lower())
        fields.append(FieldDef(name, type_))

    if not fields:
        raise LayoutError("Record definition declares no fields")
    return RecordLayout(tuple(fields))


# ---------------------------------------------------------------------------
# Field naming helpers for layouts derived from header lines
# ---------------------------------------------------------------------------


def _sanitize_name(raw: object, position: int) -> str:
    if raw is None or pd.isna(raw):
        return f"field{position}"
    s = re.sub(r"\s+", " ", str(raw).strip()).lower()
    s = re.sub(r"[^a-z0-9_]+", "_", s).strip("_")
    if not s:
        return f"field{position}"
    if s[0].isdigit():
        s = f"f_{s}"
    return s


def _dedupe_names(names: List[str]) -> List[str]:
    # Suffixes skip any name already taken, including ones from the header itself
    counts: Dict[str, int] = {}
    used = set()
    out: List[str] = []
    for n in names:
        candidate = n
        while candidate in used:
            counts[n] = counts.get(n, 0) + 1
            candidate = f"{n}_{counts[n]}"
        used.add(candidate)
        out.append(candidate)
    return out


def sniff_delimited_layout(
    path: str,
    header_lines: int = 0,
    separator: Optional[str] = None,
    quote: Optional[str] = None,
) -> RecordLayout:
    """Derive an all-STRING layout from the first line of a delimited file."""
    try:
        first = pd.read_csv(
            path,
            header=None,
            nrows=1,
            dtype=str,
            keep_default_na=False,
            sep=separator or ",",
            quotechar=quote or '"',
            engine="python",
        )
    except pd.errors.EmptyDataError as e:
        raise LayoutError(f"Cannot derive a layout from empty file {path}") from e

    row = first.iloc[0].tolist()
    if header_lines > 0:
        names = [_sanitize_name(v, i + 1) for i, v in enumerate(row)]
    else:
        names = [f"field{i + 1}" for i in range(len(row))]
    names = _dedupe_names(names)
    logger.debug(f"Derived layout for {path}: {names}")
    return RecordLayout(tuple(FieldDef(n, "STRING") for n in names))


class MetadataLayoutResolver:
    """Resolve the layout in effect for a path from the metadata store.

    A declared ``layout`` attribute wins. Otherwise delimited files get a layout
    derived from their first line; fixed-layout files cannot be guessed.

    When ``metadata`` is given, its kind, header length, separator and quote are
    used as-is and only the ``layout`` attribute is read from the store, so the
    resolver agrees with the snapshot the caller dispatched on.
    """

    def __init__(self, store: MetadataStore, metadata: Optional[FileMetadata] = None):
        self.store = store
        self.metadata = metadata

    def _snapshot(self, path: str) -> Tuple[str, FileMetadata]:
        if self.metadata is not None:
            declared = self.store.get_attribute(path, LAYOUT_ATTRIBUTE)
            return declared, self.metadata
        attrs = self.store.get_attributes(
            path,
            (
                LAYOUT_ATTRIBUTE,
                KIND_ATTRIBUTE,
                HEADER_LENGTH_ATTRIBUTE,
                SEPARATOR_ATTRIBUTE,
                QUOTE_ATTRIBUTE,
            ),
        )
        metadata = FileMetadata(
            kind=clean_kind(attrs.get(KIND_ATTRIBUTE, "")),
            header_lines=parse_header_lines(attrs.get(HEADER_LENGTH_ATTRIBUTE, "")),
            separator=attrs.get(SEPARATOR_ATTRIBUTE) or None,
            quote=attrs.get(QUOTE_ATTRIBUTE) or None,
        )
        return attrs.get(LAYOUT_ATTRIBUTE, ""), metadata

    def __call__(self, path: str) -> RecordLayout:
        declared, metadata = self._snapshot(path)
        declared = (declared or "").strip()
        if declared:
            return parse_record_definition(declared)

        if metadata.kind.strip() == "flat":
            raise LayoutError(f"No declared layout for fixed-layout file {path}")
        return sniff_delimited_layout(
            path,
            header_lines=metadata.header_lines,
            separator=metadata.separator,
            quote=metadata.quote,
        )
