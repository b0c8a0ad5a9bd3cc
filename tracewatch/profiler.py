"""Profiling of executed binaries and the index of captured written files."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, TextIO

_HASH_CHUNK = 64 * 1024
WRITTEN_FILES_INDEX = "written_files"


@dataclass
class ProfilerInfo:
    """How often a captured binary ran, its hash and when it first ran."""

    times: int = 0
    file_hash: str = ""
    first_execution_ts: int = 0

    def to_json(self) -> dict[str, object]:
        """Return the serialised form; empty fields and the timestamp are left out."""
        document: dict[str, object] = {}
        if self.times:
            document["times"] = self.times
        if self.file_hash:
            document["file_hash"] = self.file_hash
        return document


def compute_file_hash(path: str | os.PathLike) -> str:
    """Return the hex SHA-256 digest of a file's contents."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _captured_path(capture_file_id: str, first_execution_ts: int) -> str:
    parts = capture_file_id.split(".")
    if len(parts) < 2:
        raise ValueError(f"invalid capture file id: {capture_file_id}")
    exe_name = parts[1].split(":")[0]
    return f"{parts[0]}.{first_execution_ts}.{exe_name}"


@dataclass
class Profiler:
    """Profile of executed binaries keyed by capture file id."""

    profiled_files: dict[str, ProfilerInfo] = field(default_factory=dict)

    def update_profile(self, capture_file_id: str, timestamp: int) -> None:
        """Count one more execution; the first timestamp seen is kept."""
        info = self.profiled_files.get(capture_file_id)
        if info is None:
            self.profiled_files[capture_file_id] = ProfilerInfo(
                times=1, first_execution_ts=timestamp
            )
        else:
            info.times += 1

    def update_file_sha(self) -> None:
        """Hash the captured copy of every profiled binary.

        A binary whose captured copy cannot be read gets an empty hash.
        """
        for capture_file_id, info in self.profiled_files.items():
            path = _captured_path(capture_file_id, info.first_execution_ts)
            try:
                info.file_hash = compute_file_hash(path)
            except OSError:
                info.file_hash = ""

    def write_stats(self, writer: TextIO) -> None:
        """Write the profile as indented JSON, sorted by capture file id."""
        document = {
            key: info.to_json() for key, info in sorted(self.profiled_files.items())
        }
        writer.write(json.dumps(document, indent=2))


def write_written_files_index(
    written_files: Mapping[str, str],
    filters: Iterable[str],
    output_path: str | os.PathLike,
) -> Path:
    """Append ``name path`` lines for the captured written files.

    A file is listed only if its path starts with every filter prefix.
    Returns the path of the index file.
    """
    prefixes = list(filters)
    destination = Path(output_path) / WRITTEN_FILES_INDEX
    try:
        with open(destination, "a", encoding="utf-8") as index:
            for file_name, file_path in written_files.items():
                if not all(file_path.startswith(prefix) for prefix in prefixes):
                    continue
                index.write(f"{file_name} {file_path}\n")
    except OSError as err:
        raise OSError("error logging written files") from err
    return destination