"""Reassembly of captured file contents sent from the kernel in chunks."""

from __future__ import annotations

import os
import stat
import struct
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Callable

from .profiler import compute_file_hash

_CHUNK_HEADER = struct.Struct("<BQ24siQ")
_VFS_WRITE_META = struct.Struct("<IQII")
_KERNEL_MODULE_META = struct.Struct("<IQIQ")
_MPROTECT_META = struct.Struct("<Q")
_APPEND_MODES = (stat.S_IFSOCK, stat.S_IFCHR, stat.S_IFIFO)

HOST_DIR = "host"


class BinType(IntEnum):
    """Kind of binary data carried by a chunk."""

    VFS_WRITE = 1
    MPROTECT = 2
    KERNEL_MODULE = 3


class CaptureError(ValueError):
    """Raised for a chunk that cannot be written."""


@dataclass(frozen=True)
class ChunkMeta:
    """Header of a captured chunk."""

    bin_type: int
    cgroup_id: int
    metadata: bytes
    size: int
    off: int


def parse_chunk(data: bytes) -> tuple[ChunkMeta, bytes]:
    """Split a raw chunk into its header and its payload."""
    if len(data) < _CHUNK_HEADER.size:
        raise CaptureError(
            f"error in file writer: chunk header too short: {len(data)} bytes"
        )
    bin_type, cgroup_id, metadata, size, off = _CHUNK_HEADER.unpack_from(data, 0)
    if size <= 0:
        raise CaptureError(f"error in file writer: invalid chunk size: {size}")
    payload = data[_CHUNK_HEADER.size :]
    if len(payload) < size:
        raise CaptureError(f"error in file writer: chunk too large: {size}")
    meta = ChunkMeta(
        bin_type=bin_type, cgroup_id=cgroup_id, metadata=metadata, size=size, off=off
    )
    return meta, payload[:size]


def _bin_type(meta: ChunkMeta) -> BinType:
    try:
        return BinType(meta.bin_type)
    except ValueError:
        raise CaptureError(
            f"error in file writer: unknown binary type: {meta.bin_type}"
        ) from None


def _unpack(layout: struct.Struct, meta: ChunkMeta) -> tuple[int, ...]:
    try:
        return layout.unpack_from(meta.metadata, 0)
    except struct.error as err:
        raise CaptureError(f"error in file writer: {err}") from err


def capture_file_name(meta: ChunkMeta) -> str:
    """Name of the file a chunk belongs to, derived from its metadata."""
    kind = _bin_type(meta)
    if kind is BinType.VFS_WRITE:
        dev_id, inode, _mode, pid = _unpack(_VFS_WRITE_META, meta)
        name = f"write.dev-{dev_id}.inode-{inode}"
        return name if pid == 0 else f"{name}.pid-{pid}"
    if kind is BinType.MPROTECT:
        (timestamp,) = _unpack(_MPROTECT_META, meta)
        return f"bin.{timestamp}"
    dev_id, inode, pid, _size = _unpack(_KERNEL_MODULE_META, meta)
    name = "module"
    if dev_id:
        name += f".dev-{dev_id}"
    if inode:
        name += f".inode-{inode}"
    if pid:
        name += f".pid-{pid}"
    return name


def _appends(meta: ChunkMeta) -> bool:
    if _bin_type(meta) is not BinType.VFS_WRITE:
        return False
    mode = _unpack(_VFS_WRITE_META, meta)[2]
    return any(mode & kind == kind for kind in _APPEND_MODES)


def _is_last_module_chunk(meta: ChunkMeta) -> bool:
    if _bin_type(meta) is not BinType.KERNEL_MODULE:
        return False
    module_size = _unpack(_KERNEL_MODULE_META, meta)[3]
    return meta.size + meta.off == module_size


class FileWriteCapture:
    """Writes captured chunks into files under an output directory."""

    def __init__(
        self,
        output_path: str | os.PathLike,
        container_lookup: Callable[[int], str] | None = None,
    ) -> None:
        self.output_path = Path(output_path)
        self._container_lookup = container_lookup

    def _container_dir(self, cgroup_id: int) -> Path:
        container_id = self._container_lookup(cgroup_id) if self._container_lookup else ""
        return self.output_path / (container_id or HOST_DIR)

    def process(self, data: bytes) -> Path | None:
        """Write one raw chunk and return the path of the file it went to.

        Empty input is ignored and yields ``None``. Sockets, character devices
        and FIFOs are appended to; other files are written at the chunk offset.
        When the last chunk of a kernel module arrives, the file is renamed to
        carry its SHA-256 hash.
        """
        if not data:
            return None
        meta, payload = parse_chunk(data)
        directory = self._container_dir(meta.cgroup_id)
        directory.mkdir(mode=0o755, parents=True, exist_ok=True)
        path = directory / capture_file_name(meta)
        append = _appends(meta)

        fd = os.open(path, os.O_CREAT | os.O_WRONLY, 0o640)
        with os.fdopen(fd, "wb") as handle:
            if append:
                handle.seek(0, os.SEEK_END)
            else:
                handle.seek(meta.off, os.SEEK_SET)
            handle.write(payload)

        if _is_last_module_chunk(meta):
            hashed = path.with_name(f"{path.name}.{compute_file_hash(path)}")
            os.replace(path, hashed)
            return hashed
        return path