"""Process context records and a process tree built from the proc filesystem."""

from __future__ import annotations

import os
import re
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

_CONTEXT_HEADER = struct.Struct("<QQ")
_CONTEXT_IDS = struct.Struct("<9I")
_DIGITS = re.compile(r"[0-9]+")
_U32_MAX = 0xFFFFFFFF
_STATUS_SUFFIX = "/status"


@dataclass
class ProcessCtx:
    """Identity of a task as seen from the host and from its namespace."""

    start_time: int = 0
    container_id: str = ""
    pid: int = 0
    tid: int = 0
    ppid: int = 0
    host_tid: int = 0
    host_pid: int = 0
    host_ppid: int = 0
    uid: int = 0
    mnt_id: int = 0
    pid_id: int = 0


def _parse_u32(text: str) -> int:
    if not _DIGITS.fullmatch(text):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value > _U32_MAX:
        raise ValueError(f"value out of range: {text}")
    return value


def parse_process_context(
    data: bytes, container_lookup: Callable[[int], str] | None = None
) -> ProcessCtx:
    """Decode a raw process context record.

    ``container_lookup`` maps the record's cgroup id to a container id.
    """
    needed = _CONTEXT_HEADER.size + _CONTEXT_IDS.size
    if len(data) < needed:
        raise ValueError(
            f"process context too short: {len(data)} bytes, need {needed}"
        )
    start_time, cgroup_id = _CONTEXT_HEADER.unpack_from(data, 0)
    (
        pid,
        tid,
        ppid,
        host_tid,
        host_pid,
        host_ppid,
        uid,
        mnt_id,
        pid_id,
    ) = _CONTEXT_IDS.unpack_from(data, _CONTEXT_HEADER.size)
    container_id = container_lookup(cgroup_id) if container_lookup else ""
    return ProcessCtx(
        start_time=start_time,
        container_id=container_id,
        pid=pid,
        tid=tid,
        ppid=ppid,
        host_tid=host_tid,
        host_pid=host_pid,
        host_ppid=host_ppid,
        uid=uid,
        mnt_id=mnt_id,
        pid_id=pid_id,
    )


def get_file_ctime(path: str | os.PathLike) -> int:
    """Return a file's change time in nanoseconds.

    This approximates a process start time when applied to its status file.
    """
    return os.stat(path).st_ctime_ns


def _task_dir(task_status_path: str) -> str:
    return task_status_path[: len(task_status_path) - len(_STATUS_SUFFIX)]


def _read_ns_id(link_path: str, kind: str) -> int:
    target = os.readlink(link_path)
    target = target.removesuffix("]").removeprefix(f"{kind}:[")
    return _parse_u32(target)


def get_ns_id_data(task_status_path: str | os.PathLike) -> tuple[int, int]:
    """Return the mount and pid namespace ids of the task owning a status file."""
    base = _task_dir(os.fspath(task_status_path))
    mnt_id = _read_ns_id(f"{base}/ns/mnt", "mnt")
    pid_id = _read_ns_id(f"{base}/ns/pid", "pid")
    return mnt_id, pid_id


def _status_values(status: str) -> dict[str, int]:
    values: dict[str, int] = {}
    for line in status.split("\n"):
        fields = line.split(":")
        if len(fields) < 2:
            continue
        words = fields[1].split()
        if not words:
            continue
        try:
            values[fields[0]] = _parse_u32(words[0].strip())
        except ValueError:
            continue
    return values


def parse_proc_status(
    status: bytes | str, task_status_path: str | os.PathLike
) -> ProcessCtx:
    """Build a process context from the contents of a task's status file."""
    if isinstance(status, bytes):
        status = status.decode("utf-8", errors="replace")
    values = _status_values(status)
    path = os.fspath(task_status_path)
    start_time = get_file_ctime(path)
    mnt_id, pid_id = get_ns_id_data(path)
    return ProcessCtx(
        start_time=start_time,
        host_pid=values.get("Tgid", 0),
        host_tid=values.get("Pid", 0),
        host_ppid=values.get("PPid", 0),
        uid=values.get("Uid", 0),
        pid=values.get("NStgid", 0),
        tid=values.get("NSpid", 0),
        ppid=values.get("NSpgid", 0),
        mnt_id=mnt_id,
        pid_id=pid_id,
    )


@dataclass
class ProcessTree:
    """Process contexts keyed by host thread id."""

    processes: dict[int, ProcessCtx] = field(default_factory=dict)

    @classmethod
    def from_proc(
        cls,
        container_id_resolver: Callable[[str], str] | None = None,
        proc_root: str | os.PathLike = "/proc",
    ) -> "ProcessTree":
        """Scan every task under ``proc_root``.

        ``container_id_resolver`` maps a task directory to its container id;
        tasks it fails on, and tasks that vanish mid-scan, are skipped.
        """
        tree = cls()
        root = Path(proc_root)
        for entry in os.listdir(root):
            try:
                pid = _parse_u32(entry)
            except ValueError:
                continue
            try:
                tasks = os.listdir(root / str(pid) / "task")
            except OSError:
                continue
            for task in tasks:
                task_dir = f"{root}/{pid}/task/{task}"
                status_path = f"{task_dir}/status"
                try:
                    data = Path(status_path).read_bytes()
                    ctx = parse_proc_status(data, status_path)
                    container_id = (
                        container_id_resolver(task_dir) if container_id_resolver else ""
                    )
                except (OSError, ValueError):
                    continue
                ctx.container_id = container_id
                tree.processes[ctx.host_tid] = ctx
        return tree

    def get(self, host_tid: int) -> ProcessCtx:
        """Return the context of a host thread id."""
        try:
            return self.processes[host_tid]
        except KeyError:
            raise KeyError(f"no process with host tid {host_tid}") from None