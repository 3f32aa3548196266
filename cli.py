"""Command-line interface for best record structure inference.

Usage (examples):
    python -m best_record.cli path/to/sales.csv
    python -m best_record.cli path/to/sales.csv --sampling 10 --emit-transform
    python -m best_record.cli path/to/people.dat --text --output layout.html

File kind, header length and declared layout are read from a JSON sidecar
beside the file (``sales.csv.meta.json`` by default), e.g.::

    {"kind": "csv", "headerLength": 1}

A file without a sidecar is treated as delimited text without a header.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from . import SidecarMetadataStore, best_record_structure_from_path
from .log_utils import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Propose the best record structure for a flat or delimited file."
    )
    parser.add_argument("file", help="Path to the data file")
    parser.add_argument(
        "--sampling",
        type=int,
        default=100,
        help="Percentage of records to examine, 1-100 (default: 100)",
    )
    parser.add_argument(
        "--emit-transform",
        action="store_true",
        help="Also emit a TRANSFORM mapping old records to the new layout.",
    )
    parser.add_argument(
        "--text",
        action="store_true",
        help="Emit a single HTML fragment instead of declaration lines.",
    )
    parser.add_argument(
        "--layout-name",
        default="NewLayout",
        help="Name of the proposed record (default: NewLayout)",
    )
    parser.add_argument(
        "--metadata-suffix",
        default=".meta.json",
        help="Suffix of the metadata sidecar file (default: .meta.json)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result lines as a JSON list.",
    )
    parser.add_argument(
        "--output",
        help="Optional path to write the result lines",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log pipeline progress to stderr.",
    )
    args = parser.parse_args()

    setup_logging(verbose=args.verbose)

    path = Path(args.file)
    if not path.exists():
        raise SystemExit(f"File not found: {path}")

    result = best_record_structure_from_path(
        str(path),
        args.sampling,
        args.emit_transform,
        args.text,
        metadata_store=SidecarMetadataStore(args.metadata_suffix),
        config={"layout_name": args.layout_name},
    )
    if result.error:
        raise SystemExit(result.error)

    lines = result.lines()
    if args.json:
        print(json.dumps(lines, indent=2))
    else:
        print("\n".join(lines))

    if args.output:
        out_path = Path(args.output)
        out_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        print(f"\nSaved result to {out_path}")


if __name__ == "__main__":  # pragma: no cover
    main()
