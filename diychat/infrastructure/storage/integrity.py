"""Reporting for metadata rows whose content blob is missing."""

import logging
from uuid import UUID

from diychat.exceptions import StorageInconsistencyError

logger = logging.getLogger("storage")


def report_missing_content(
    session_id: UUID,
    content_id: UUID,
    kind: str,
) -> StorageInconsistencyError:
    """Log a missing blob at ERROR and return the matching error.

    Read paths substitute empty content and keep going; strict callers can
    raise the returned error instead.
    """
    error = StorageInconsistencyError(session_id, content_id, kind)
    logger.error(
        "Metadata references missing content",
        extra={
            "service": "storage",
            "session_id": str(session_id),
            "content_id": str(content_id),
            "kind": kind,
            "error_code": error.code,
        },
    )
    return error


__all__ = ["report_missing_content"]
