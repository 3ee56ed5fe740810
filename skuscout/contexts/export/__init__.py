"""
Export domain.

Turns a completed job's outcomes into a tabular file.
"""

from skuscout.contexts.export.csv_export import (
    EXPORT_COLUMNS,
    build_export_frame,
    delete_export,
    export_path,
    generate_export,
)

__all__ = [
    "generate_export",
    "build_export_frame",
    "export_path",
    "delete_export",
    "EXPORT_COLUMNS",
]
