"""Test document discovery.

Resolves file and directory inputs into a flat, de-duplicated, ordered list
of test documents. Explicitly listed files come first, followed by the
contents of each listed directory in the order the filesystem returns them.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

import structlog

from browsertest.runner.models import TEST_SUFFIX, TestDocument

logger = structlog.get_logger()


def _scan_directory(directory: Path, suffix: str) -> list[Path]:
    """Recursively collect matching files in filesystem listing order."""
    found: list[Path] = []
    for dirpath, _dirnames, filenames in os.walk(directory):
        for name in filenames:
            if name.endswith(suffix):
                found.append(Path(dirpath) / name)
    return found


def discover_documents(
    inputs: Iterable[str | Path],
    *,
    suffix: str = TEST_SUFFIX,
) -> list[TestDocument]:
    """Resolve inputs into test documents.

    Missing paths and paths that are neither a directory nor a matching file
    are logged and skipped. An empty result is not an error.
    """
    files: list[Path] = []
    directories: list[Path] = []

    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            directories.append(path)
        elif path.is_file() and path.name.endswith(suffix):
            files.append(path)
        elif path.exists():
            logger.warning("input_skipped", path=str(path), reason="not a test document or folder")
        else:
            logger.warning("input_skipped", path=str(path), reason="does not exist")

    candidates = list(files)
    for directory in directories:
        candidates.extend(_scan_directory(directory, suffix))

    seen: set[TestDocument] = set()
    documents: list[TestDocument] = []
    for candidate in candidates:
        document = TestDocument.from_path(candidate)
        if document in seen:
            continue
        seen.add(document)
        documents.append(document)

    logger.debug(
        "documents_discovered",
        count=len(documents),
        files=len(files),
        directories=len(directories),
    )
    return documents
