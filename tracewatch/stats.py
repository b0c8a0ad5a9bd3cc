"""Event counters and the numeric identifiers shared with the kernel side."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum


class Counter:
    """A thread-safe integer counter."""

    def __init__(self, value: int = 0) -> None:
        self._value = value
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        """The current count."""
        with self._lock:
            return self._value

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"Counter({self.value})"

    def increment(self, *args: int) -> None:
        """Add the sum of ``args``, or one when no amount is given."""
        amount = sum(args) if args else 1
        with self._lock:
            self._value += amount


@dataclass(frozen=True)
class Stats:
    """A point-in-time copy of the tracing counters."""

    event_count: int = 0
    error_count: int = 0
    lost_ev_count: int = 0
    lost_wr_count: int = 0
    lost_nt_count: int = 0


@dataclass
class StatsStore:
    """Live counters updated while tracing."""

    event_counter: Counter = field(default_factory=Counter)
    error_counter: Counter = field(default_factory=Counter)
    lost_ev_counter: Counter = field(default_factory=Counter)
    lost_wr_counter: Counter = field(default_factory=Counter)
    lost_nt_counter: Counter = field(default_factory=Counter)

    def snapshot(self) -> Stats:
        """Return the current values of all counters."""
        return Stats(
            event_count=self.event_counter.value,
            error_count=self.error_counter.value,
            lost_ev_count=self.lost_ev_counter.value,
            lost_wr_count=self.lost_wr_counter.value,
            lost_nt_count=self.lost_nt_counter.value,
        )


class BpfConfig(IntEnum):
    """Keys of the configuration map read by the kernel programs."""

    DETECT_ORIG_SYSCALL = 1
    EXEC_ENV = 2
    CAPTURE_FILES = 3
    EXTRACT_DYN_CODE = 4
    TRACEE_PID = 5
    STACK_ADDRESSES = 6
    UID_FILTER = 7
    MNT_NS_FILTER = 8
    PID_NS_FILTER = 9
    UTS_NS_FILTER = 10
    COMM_FILTER = 11
    PID_FILTER = 12
    CONT_FILTER = 13
    FOLLOW_FILTER = 14
    NEW_PID_FILTER = 15
    NEW_CONT_FILTER = 16
    DEBUG_NET = 17
    PROC_TREE_FILTER = 18
    CAPTURE_MODULES = 19
    CGROUP_V1 = 20


class TailCall(IntEnum):
    """Indexes of functions used in kernel tail calls."""

    VFS_WRITE = 0
    VFS_WRITEV = 1
    SEND_BIN = 2
    SEND_BIN_TP = 3


def bool_to_u32(value: bool) -> int:
    """Encode a flag the way the kernel configuration map expects it."""
    return 1 if value else 0