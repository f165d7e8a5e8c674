"""Two-tier persistence: file-backed content plus a relational metadata index."""

from diychat.infrastructure.storage.content_store import CONTENT_KINDS, ContentKind, FileContentStore
from diychat.infrastructure.storage.integrity import report_missing_content
from diychat.infrastructure.storage.metadata_index import UNSET, MetadataIndex

__all__ = [
    "CONTENT_KINDS",
    "ContentKind",
    "FileContentStore",
    "MetadataIndex",
    "UNSET",
    "report_missing_content",
]
