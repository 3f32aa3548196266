"""Default best-record-structure inference over a sampled dataset.

For every layout field the profiler looks at the trimmed, non-blank sample
values and proposes the narrowest declaration that holds them all:

  integers          -> UNSIGNEDn / INTEGERn (smallest n in 1..8)
  reals             -> REAL8
  anything else     -> STRINGn (longest value) or UTF8 for non-ASCII text
  no values         -> the declared type (STRING when undeclared)

Values with leading zeros ("00123") stay strings so they keep their text form.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .dataset import DatasetHandle
from .layout import RecordLayout

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "layout_name": "NewLayout",
    "source_layout_name": "OldLayout",
    "random_state": 42,
}

INTEGER_PATTERN = r"[+-]?\d+"
REAL_PATTERN = r"[+-]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?"
LEADING_ZERO_PATTERN = r"^[+-]?0\d"
MAX_INTEGER_BYTES = 8


@dataclass(frozen=True)
class FieldProfile:
    name: str
    declared_type: str
    best_type: str
    non_blank: int
    max_length: int


def _normalize_whitespace(series: pd.Series) -> pd.Series:
    s = series.astype(str)
    s = s.str.replace("\u2212", "-", regex=False)
    s = s.str.replace("\u00a0", " ", regex=False)
    s = s.str.replace(r"[\u2000-\u200B]", " ", regex=True)
    return s.str.strip()


def _integer_type(values: pd.Series) -> Optional[str]:
    ints = [int(v) for v in values]
    lo, hi = min(ints), max(ints)
    for n in range(1, MAX_INTEGER_BYTES + 1):
        bits = 8 * n
        if lo >= 0 and hi < 2**bits:
            return f"UNSIGNED{n}"
        if lo < 0 and -(2 ** (bits - 1)) <= lo and hi < 2 ** (bits - 1):
            return f"INTEGER{n}"
    return None


class RecordStructureProfiler:
    """Proposes a best type per field from sampled string values."""

    def sample(
        self, df: pd.DataFrame, sampling_percent: int, random_state: Optional[int] = 42
    ) -> pd.DataFrame:
        if not 1 <= sampling_percent <= 100:
            raise ValueError(
                f"sampling_percent must be between 1 and 100, got {sampling_percent}"
            )
        if sampling_percent == 100 or df.empty:
            return df
        n = max(1, int(round(len(df) * sampling_percent / 100.0)))
        return df.sample(n=n, random_state=random_state).sort_index()

    def profile_fields(
        self, df: pd.DataFrame, layout: RecordLayout
    ) -> List[FieldProfile]:
        """Profile every layout field, in layout order."""
        profiles = []
        for field in layout:
            series = df[field.name] if field.name in df.columns else pd.Series(dtype=object)
            profiles.append(self._profile_field(series, field.name, field.type))
        return profiles

    def _profile_field(
        self, series: pd.Series, name: str, declared_type: str
    ) -> FieldProfile:
        values = _normalize_whitespace(series.dropna())
        values = values[values != ""]
        max_length = int(values.str.len().max()) if len(values) else 0

        best_type = self._best_type(values, max_length) or declared_type or "STRING"
        logger.debug(
            f"Field {name}: declared={declared_type} best={best_type} "
            f"values={len(values)}"
        )
        return FieldProfile(
            name=name,
            declared_type=declared_type,
            best_type=best_type,
            non_blank=int(len(values)),
            max_length=max_length,
        )

    def _best_type(self, values: pd.Series, max_length: int) -> Optional[str]:
        if values.empty:
            return None

        has_leading_zero = bool(values.str.contains(LEADING_ZERO_PATTERN, regex=True).any())
        if not has_leading_zero:
            if values.str.fullmatch(INTEGER_PATTERN).all():
                int_type = _integer_type(values)
                if int_type:
                    return int_type
            elif values.str.fullmatch(REAL_PATTERN).all():
                reals = pd.to_numeric(values, errors="coerce")
                if bool(np.isfinite(reals).all()):
                    return "REAL8"

        if not values.map(str.isascii).all():
            return "UTF8"
        return f"STRING{max_length}"


# ---------------------------------------------------------------------------
# Output rendering
# ---------------------------------------------------------------------------


def declaration_lines(profiles: List[FieldProfile], layout_name: str) -> List[str]:
    lines = [f"{layout_name} := RECORD"]
    lines.extend(f"    {p.best_type} {p.name};" for p in profiles)
    lines.append("END;")
    return lines


def transform_lines(
    profiles: List[FieldProfile], layout_name: str, source_layout_name: str
) -> List[str]:
    lines = [f"{layout_name} Make{layout_name}({source_layout_name} r) := TRANSFORM"]
    lines.extend(f"    SELF.{p.name} := ({p.best_type})r.{p.name};" for p in profiles)
    lines.append("END;")
    return lines


def render_html(profiles: List[FieldProfile], transform: Optional[List[str]] = None) -> str:
    rows = "".join(
        "<tr><td>{}</td><td>{}</td><td>{}</td></tr>".format(
            html.escape(p.name), html.escape(p.declared_type), html.escape(p.best_type)
        )
        for p in profiles
    )
    out = (
        "<table><tr><th>Field</th><th>Declared Type</th><th>Best Type</th></tr>"
        f"{rows}</table>"
    )
    if transform:
        out += "<pre>" + html.escape("\n".join(transform)) + "</pre>"
    return out


def best_record_structure(
    dataset: DatasetHandle,
    sampling_percent: int = 100,
    emit_transform: bool = False,
    text_output: bool = False,
    *,
    config: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, str]]:
    """Propose the best record structure for ``dataset``.

    Parameters
    ----------
    dataset : DatasetHandle
        Dataset description; materialized here.
    sampling_percent : int
        Percentage (1-100) of rows examined. Sampling is seeded so repeated
        calls over unchanged data agree.
    emit_transform : bool
        Also emit a TRANSFORM declaration mapping old records to the new layout.
    text_output : bool
        Return one HTML fragment instead of one record per declaration line.

    Returns
    -------
    list of dicts: ``{"line": ...}`` per declaration line, or a single
    ``{"result": html}`` when ``text_output`` is set.
    """
    cfg = {**DEFAULT_CONFIG, **(config or {})}
    profiler = RecordStructureProfiler()

    df = dataset.to_frame()
    sampled = profiler.sample(df, sampling_percent, cfg["random_state"])
    logger.info(
        f"Profiling {len(sampled)} of {len(df)} rows across {len(dataset.layout)} fields"
    )
    profiles = profiler.profile_fields(sampled, dataset.layout)

    transform = (
        transform_lines(profiles, cfg["layout_name"], cfg["source_layout_name"])
        if emit_transform
        else None
    )
    if text_output:
        return [{"result": render_html(profiles, transform)}]

    lines = declaration_lines(profiles, cfg["layout_name"])
    if transform:
        lines.extend(transform)
    return [{"line": line} for line in lines]
