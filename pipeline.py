from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .dataset import DatasetHandle, ReadStrategy
from .layout import MetadataLayoutResolver, RecordLayout
from .metadata import (
    FileMetadata,
    MetadataStore,
    SidecarMetadataStore,
    resolve_file_metadata,
)
from .structure import DEFAULT_CONFIG, best_record_structure

logger = logging.getLogger(__name__)

LayoutResolver = Callable[[str], RecordLayout]
InferenceRoutine = Callable[[DatasetHandle, int, bool, bool], Sequence[Any]]

# Keys a raw inference record may carry its text under, in lookup order
_TEXT_KEYS = ("line", "declaration", "result", "html", "text")


class UnsupportedKindError(ValueError):
    """Raised when a file's kind is neither flat, csv nor unset."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unsupported file kind: {kind!r}")


class FileKind(str, Enum):
    FLAT = "flat"
    CSV = "csv"
    UNKNOWN = ""
    UNSUPPORTED = "unsupported"


def classify_kind(kind: str) -> FileKind:
    k = (kind or "").strip()
    if k == "flat":
        return FileKind.FLAT
    if k == "csv":
        return FileKind.CSV
    if k == "":
        return FileKind.UNKNOWN
    return FileKind.UNSUPPORTED


def clamp_sampling_percent(value: int) -> int:
    return max(1, min(100, int(value)))


@dataclass(frozen=True)
class InferenceRequest:
    dataset: DatasetHandle
    sampling_percent: int
    emit_transform: bool
    text_output: bool

    def invoke(self, inference: InferenceRoutine) -> Sequence[Any]:
        return inference(
            self.dataset, self.sampling_percent, self.emit_transform, self.text_output
        )


@dataclass(frozen=True)
class StructureLine:
    text: str


@dataclass(frozen=True)
class CanonicalResult:
    """Ordered single-string records, plus the error message of a soft failure."""

    records: Tuple[StructureLine, ...] = ()
    error: Optional[str] = None

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[StructureLine]:
        return iter(self.records)

    def __getitem__(self, index: int) -> StructureLine:
        return self.records[index]

    @property
    def ok(self) -> bool:
        return self.error is None

    def lines(self) -> list:
        return [r.text for r in self.records]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"line": self.lines()}, dtype=object)


# ---------------------------------------------------------------------------
# Dispatch & normalization
# ---------------------------------------------------------------------------


def build_dataset(
    path: str, metadata: FileMetadata, layout_resolver: LayoutResolver
) -> DatasetHandle:
    """Choose the read strategy for ``metadata.kind`` and bind it to the layout."""
    kind = classify_kind(metadata.kind)
    if kind is FileKind.UNSUPPORTED:
        raise UnsupportedKindError(metadata.kind)

    if kind is FileKind.FLAT:
        return DatasetHandle(
            path=path, layout=layout_resolver(path), strategy=ReadStrategy.FIXED
        )

    if kind is FileKind.UNKNOWN:
        logger.warning(f"No kind recorded for {path}; assuming delimited text")
    return DatasetHandle(
        path=path,
        layout=layout_resolver(path),
        strategy=ReadStrategy.DELIMITED,
        header_lines=metadata.header_lines,
        separator=metadata.separator,
        quote=metadata.quote,
    )


def _project_record(record: Any) -> str:
    """Map one raw inference record onto its single string value."""
    if isinstance(record, str):
        return record
    if isinstance(record, Mapping):
        for key in _TEXT_KEYS:
            if key in record:
                return str(record[key])
        if len(record) == 1:
            return str(next(iter(record.values())))
    elif isinstance(record, tuple) and len(record) == 1:
        return str(record[0])
    else:
        for key in _TEXT_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str):
                return value
    raise TypeError(f"Cannot project inference record of type {type(record).__name__}")


def normalize_result(raw: Sequence[Any], text_output: bool) -> CanonicalResult:
    """Re-project the inference output onto the single-string-field shape."""
    if raw is None:
        raw = []
    elif isinstance(raw, pd.DataFrame):
        raw = raw.to_dict(orient="records")
    texts = [_project_record(r) for r in raw]
    if text_output:
        return CanonicalResult(records=(StructureLine("".join(texts)),))
    return CanonicalResult(records=tuple(StructureLine(t) for t in texts))


def best_record_structure_from_path(
    path: str,
    sampling_percent: int = 100,
    emit_transform: bool = False,
    text_output: bool = False,
    *,
    metadata_store: Optional[MetadataStore] = None,
    layout_resolver: Optional[LayoutResolver] = None,
    inference: Optional[InferenceRoutine] = None,
    config: Optional[Dict[str, Any]] = None,
) -> CanonicalResult:
    """Primary entry point: resolve metadata -> build dataset -> infer -> normalize.

    Parameters
    ----------
    path : str
        Logical file path.
    sampling_percent : int
        Percentage of records examined; clamped into [1, 100].
    emit_transform : bool
        Also request a TRANSFORM mapping old records to the proposed layout.
    text_output : bool
        Return a single HTML fragment instead of one record per line.
    metadata_store, layout_resolver, inference : optional
        Collaborators. Defaults: SidecarMetadataStore, MetadataLayoutResolver
        over the same store and the resolved metadata, and the bundled
        best_record_structure routine.
    config : dict, optional
        Options for the bundled routine (layout_name, source_layout_name,
        random_state).

    Returns
    -------
    CanonicalResult. For an unsupported kind the result is empty and
    ``error`` holds the message; resolution and inference failures raise.
    """
    sampling = clamp_sampling_percent(sampling_percent)
    store = metadata_store if metadata_store is not None else SidecarMetadataStore()
    routine = inference or functools.partial(
        best_record_structure, config={**DEFAULT_CONFIG, **(config or {})}
    )

    metadata = resolve_file_metadata(path, store)
    logger.info(f"{path}: kind={metadata.kind!r} header_lines={metadata.header_lines}")
    resolver = layout_resolver or MetadataLayoutResolver(store, metadata)

    try:
        dataset = build_dataset(path, metadata, resolver)
    except UnsupportedKindError as e:
        logger.error(str(e))
        return CanonicalResult(records=(), error=str(e))

    request = InferenceRequest(dataset, sampling, emit_transform, text_output)
    raw = request.invoke(routine)
    result = normalize_result(raw, text_output)
    logger.info(f"{path}: {len(result)} structure record(s)")
    return result
