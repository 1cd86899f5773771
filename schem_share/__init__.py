"""SchemForge schem_share — 上传/导出辅助"""

from schem_share.summary import (
    UploadBundle,
    build_summary,
    build_upload_bundle,
    summary_json,
    write_archive,
)

__all__ = [
    "UploadBundle",
    "build_summary",
    "build_upload_bundle",
    "summary_json",
    "write_archive",
]
