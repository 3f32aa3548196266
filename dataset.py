"""Dataset handles: a file path bound to a record layout and a read strategy.

A handle is only a description. ``to_frame`` materializes it as a DataFrame of
strings (one column per layout field) when the inference routine needs rows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .layout import FieldDef, LayoutError, RecordLayout

logger = logging.getLogger(__name__)

_TYPE_PATTERN = re.compile(r"^([A-Z]+?)(\d+)?$")
_INT_SIZES = (1, 2, 4, 8)


class ReadStrategy(str, Enum):
    DELIMITED = "delimited"
    FIXED = "fixed"


@dataclass(frozen=True)
class DatasetHandle:
    path: str
    layout: RecordLayout
    strategy: ReadStrategy
    header_lines: int = 0
    separator: Optional[str] = None
    quote: Optional[str] = None

    def to_frame(self) -> pd.DataFrame:
        if self.strategy is ReadStrategy.FIXED:
            return read_fixed(self.path, self.layout)
        return read_delimited(
            self.path,
            self.layout,
            header_lines=self.header_lines,
            separator=self.separator,
            quote=self.quote,
        )


def read_delimited(
    path: str,
    layout: RecordLayout,
    header_lines: int = 0,
    separator: Optional[str] = None,
    quote: Optional[str] = None,
) -> pd.DataFrame:
    """Read delimited text, skipping ``header_lines`` and naming columns by the layout."""
    names = layout.names
    try:
        df = pd.read_csv(
            path,
            header=None,
            names=names,
            skiprows=header_lines,
            dtype=str,
            keep_default_na=False,
            index_col=False,
            sep=separator or ",",
            quotechar=quote or '"',
            skip_blank_lines=True,
            engine="python",
        )
    except pd.errors.EmptyDataError:
        return pd.DataFrame({n: pd.Series(dtype=object) for n in names})
    except pd.errors.ParserError as e:
        raise LayoutError(f"Failed to parse delimited file {path}: {e}") from e

    logger.debug(f"Read {len(df)} delimited rows from {path}")
    return df.fillna("")


# ---------------------------------------------------------------------------
# Fixed-layout (binary record) reads
# ---------------------------------------------------------------------------


def _numpy_field_dtype(field: FieldDef) -> str:
    m = _TYPE_PATTERN.match(field.type.upper())
    if not m:
        raise LayoutError(f"Field {field.name}: no fixed width for type {field.type}")
    base, size = m.group(1), m.group(2)
    n = int(size) if size else None

    if base in ("STRING", "DATA", "QSTRING") and n:
        return f"S{n}"
    if base == "INTEGER" and n in _INT_SIZES:
        return f"<i{n}"
    if base == "UNSIGNED" and n in _INT_SIZES:
        return f"<u{n}"
    if base == "REAL" and n in (4, 8):
        return f"<f{n}"
    if base == "BOOLEAN" and n is None:
        return "?"
    raise LayoutError(f"Field {field.name}: no fixed width for type {field.type}")


def record_dtype(layout: RecordLayout) -> np.dtype:
    """Build the structured dtype of one fixed-layout record."""
    return np.dtype([(f.name, _numpy_field_dtype(f)) for f in layout])


def _decode_column(values: np.ndarray) -> List[str]:
    if values.dtype.kind == "S":
        return [
            v.rstrip(b"\x00 ").decode("utf-8", errors="replace") for v in values.tolist()
        ]
    if values.dtype.kind == "b":
        return ["true" if v else "false" for v in values.tolist()]
    return [str(v) for v in values.tolist()]


def read_fixed(path: str, layout: RecordLayout) -> pd.DataFrame:
    """Read fixed-length binary records described by ``layout``."""
    dtype = record_dtype(layout)
    size = Path(path).stat().st_size
    if size % dtype.itemsize:
        raise LayoutError(
            f"{path}: size {size} is not a multiple of the record size {dtype.itemsize}"
        )

    records = np.fromfile(path, dtype=dtype)
    logger.debug(f"Read {len(records)} fixed-layout records from {path}")
    columns: List[Tuple[str, List[str]]] = [
        (name, _decode_column(records[name])) for name in layout.names
    ]
    return pd.DataFrame(dict(columns), columns=layout.names, dtype=object)
