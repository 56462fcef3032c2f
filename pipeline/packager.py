"""
Stage 4: Packager
Bundles named artifacts into a single zip archive.
"""

import io
import logging
import zipfile
from typing import Mapping, Optional, Union

from .errors import ArtifactIOError

logger = logging.getLogger("doc_studio.packager")


# Fixed entry metadata keeps identical inputs byte-identical
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
ZIP_FILE_MODE = 0o644 << 16


def package(
    artifacts: Mapping[str, Union[bytes, str]],
    archive_name: str,
    folder: Optional[str] = None,
) -> bytes:
    """
    Build a zip archive in memory.

    Args:
        artifacts: filename -> content, written in mapping order
        archive_name: Name of the archive (for logging and download)
        folder: Optional folder every entry is placed under

    Returns:
        Archive bytes
    """
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, content in artifacts.items():
                entry = zipfile.ZipInfo(f"{folder}/{name}" if folder else name, date_time=ZIP_TIMESTAMP)
                entry.compress_type = zipfile.ZIP_DEFLATED
                entry.external_attr = ZIP_FILE_MODE
                data = content.encode("utf-8") if isinstance(content, str) else content
                archive.writestr(entry, data)
    except (OSError, zipfile.BadZipFile, ValueError) as e:
        raise ArtifactIOError(f"Could not build {archive_name}: {e}") from e

    data = buffer.getvalue()
    logger.info(f"Packaged {len(artifacts)} files into {archive_name} ({len(data)} bytes)")
    return data
