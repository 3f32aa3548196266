import json
from pathlib import Path

import pytest

from best_record import (
    FileMetadata,
    InMemoryMetadataStore,
    MetadataStore,
    ResolutionError,
    SidecarMetadataStore,
    resolve_file_metadata,
)
from best_record.metadata import clean_kind, parse_header_lines


def test_kind_is_trimmed_and_header_parsed():
    store = InMemoryMetadataStore(
        {"/f.csv": {"kind": " \tcsv\r\n\x00", "headerLength": " 2 "}}
    )
    assert resolve_file_metadata("/f.csv", store) == FileMetadata(kind="csv", header_lines=2)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("", 0),
        ("0", 0),
        ("3", 3),
        ("abc", 0),
        ("-1", 0),
        ("1.5", 0),
        ("\u00b2", 0),
        ("1\u0663", 0),
    ],
)
def test_header_length_defaults_to_zero(raw, expected):
    assert parse_header_lines(raw) == expected


def test_missing_attributes_are_empty():
    store = InMemoryMetadataStore({"/f": {}})
    metadata = resolve_file_metadata("/f", store)
    assert metadata == FileMetadata(kind="", header_lines=0, separator=None, quote=None)


def test_clean_kind_keeps_inner_text():
    assert clean_kind("\x01 flat \x7f") == "flat"
    assert clean_kind(None) == ""


def test_unknown_path_is_resolution_error():
    with pytest.raises(ResolutionError):
        resolve_file_metadata("/nowhere", InMemoryMetadataStore({}))


class _UnreachableStore(MetadataStore):
    def get_attribute(self, path, name):
        raise ConnectionError("metadata service down")


def test_unreachable_store_is_resolution_error():
    with pytest.raises(ResolutionError) as excinfo:
        resolve_file_metadata("/f.csv", _UnreachableStore())
    assert isinstance(excinfo.value.__cause__, ConnectionError)


class _CountingStore(MetadataStore):
    def __init__(self):
        self.batches = []

    def get_attribute(self, path, name):
        raise AssertionError("attributes must be fetched together")

    def get_attributes(self, path, names):
        names = list(names)
        self.batches.append(names)
        return {n: {"kind": "flat", "headerLength": "4"}.get(n, "") for n in names}


def test_attributes_are_fetched_in_one_call():
    store = _CountingStore()
    metadata = resolve_file_metadata("/f.dat", store)
    assert metadata.kind == "flat"
    assert metadata.header_lines == 4
    assert len(store.batches) == 1
    assert {"kind", "headerLength"} <= set(store.batches[0])


# ---------------------------------------------------------------------------
# Sidecar store
# ---------------------------------------------------------------------------


def test_sidecar_attributes(tmp_path: Path):
    data = tmp_path / "sales.csv"
    data.write_text("a,b\n1,2\n", encoding="utf-8")
    (tmp_path / "sales.csv.meta.json").write_text(
        json.dumps({"kind": "csv", "headerLength": 1, "separator": ";"}),
        encoding="utf-8",
    )

    store = SidecarMetadataStore()
    assert store.get_attribute(str(data), "headerLength") == "1"
    assert resolve_file_metadata(str(data), store) == FileMetadata(
        kind="csv", header_lines=1, separator=";"
    )


def test_file_without_sidecar_is_unclassified(tmp_path: Path):
    data = tmp_path / "plain.txt"
    data.write_text("x\n", encoding="utf-8")
    metadata = resolve_file_metadata(str(data), SidecarMetadataStore())
    assert metadata.kind == ""
    assert metadata.header_lines == 0


def test_missing_data_file_is_resolution_error(tmp_path: Path):
    with pytest.raises(ResolutionError, match="File not found"):
        resolve_file_metadata(str(tmp_path / "gone.csv"), SidecarMetadataStore())


@pytest.mark.parametrize("sidecar_text", ["{not json", "[1, 2]"])
def test_bad_sidecar_is_resolution_error(tmp_path: Path, sidecar_text):
    data = tmp_path / "sales.csv"
    data.write_text("a\n", encoding="utf-8")
    (tmp_path / "sales.csv.meta.json").write_text(sidecar_text, encoding="utf-8")
    with pytest.raises(ResolutionError):
        resolve_file_metadata(str(data), SidecarMetadataStore())


def test_sidecar_layout_list_becomes_record_text(tmp_path: Path):
    data = tmp_path / "people.dat"
    data.write_bytes(b"")
    (tmp_path / "people.dat.meta.json").write_text(
        json.dumps(
            {"layout": [{"name": "id", "type": "UNSIGNED4"}, {"name": "nm", "type": "STRING8"}]}
        ),
        encoding="utf-8",
    )
    layout = SidecarMetadataStore().get_attribute(str(data), "layout")
    assert layout == "RECORD UNSIGNED4 id; STRING8 nm; END;"


@pytest.mark.parametrize(
    "layout",
    [[{"name": "id"}], [{"type": "UNSIGNED4"}], ["UNSIGNED4 id"]],
)
def test_sidecar_layout_entry_without_name_or_type(tmp_path: Path, layout):
    data = tmp_path / "people.dat"
    data.write_bytes(b"")
    sidecar = tmp_path / "people.dat.meta.json"
    sidecar.write_text(json.dumps({"kind": "flat", "layout": layout}), encoding="utf-8")

    with pytest.raises(ResolutionError) as excinfo:
        SidecarMetadataStore().get_attribute(str(data), "layout")
    assert str(sidecar) in str(excinfo.value)
