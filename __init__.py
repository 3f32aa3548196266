"""Best record structure from a bare file path.

Public entry point:
    best_record_structure_from_path(path, sampling_percent=100, emit_transform=False,
                                    text_output=False, *, metadata_store=None,
                                    layout_resolver=None, inference=None, config=None)

Output modes:
    default          -> one record per declaration line
    emit_transform   -> declaration lines followed by TRANSFORM lines
    text_output      -> a single record holding an HTML fragment
"""

from .dataset import DatasetHandle, ReadStrategy  # noqa: F401
from .layout import (  # noqa: F401
    FieldDef,
    LayoutError,
    MetadataLayoutResolver,
    RecordLayout,
    parse_record_definition,
)
from .metadata import (  # noqa: F401
    FileMetadata,
    InMemoryMetadataStore,
    MetadataStore,
    ResolutionError,
    SidecarMetadataStore,
    resolve_file_metadata,
)
from .pipeline import (  # noqa: F401
    CanonicalResult,
    FileKind,
    StructureLine,
    UnsupportedKindError,
    best_record_structure_from_path,
)
from .structure import best_record_structure  # noqa: F401

__all__ = [
    "best_record_structure_from_path",
    "best_record_structure",
    "CanonicalResult",
    "StructureLine",
    "FileKind",
    "UnsupportedKindError",
    "FileMetadata",
    "MetadataStore",
    "InMemoryMetadataStore",
    "SidecarMetadataStore",
    "ResolutionError",
    "resolve_file_metadata",
    "RecordLayout",
    "FieldDef",
    "LayoutError",
    "MetadataLayoutResolver",
    "parse_record_definition",
    "DatasetHandle",
    "ReadStrategy",
]
