"""User-defined tracing configuration and its static validation."""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

MAX_FILE_WRITE_FILTERS = 3
MAX_PATH_FILTER_LENGTH = 50
DEFAULT_MAX_PIDS_CACHE = 5


class ConfigError(ValueError):
    """Raised when a configuration fails validation."""


@dataclass
class CaptureConfig:
    """What artifacts to capture and where to put them."""

    output_path: str = ""
    file_write: bool = False
    module: bool = False
    filter_file_write: list[str] = field(default_factory=list)
    exec: bool = False
    mem: bool = False
    profile: bool = False
    net_ifaces: list[str] | None = None


@dataclass
class OutputConfig:
    """Options that shape the emitted events."""

    stack_addresses: bool = False
    detect_syscall: bool = False
    exec_env: bool = False
    relative_time: bool = False
    exec_hash: bool = False
    parse_arguments: bool = False


@dataclass
class Config:
    """Complete tracing configuration.

    ``events_to_trace`` lists event ids; ``arg_filters`` maps an event id to
    filters keyed by argument name.
    """

    events_to_trace: list[int] | None = None
    arg_filters: dict[int, dict[str, Any]] = field(default_factory=dict)
    follow: bool = False
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    perf_buffer_size: int = 1024
    blob_perf_buffer_size: int = 1024
    debug: bool = False
    max_pids_cache: int = DEFAULT_MAX_PIDS_CACHE
    btf_obj_path: str = ""
    bpf_obj_path: str = ""
    bpf_obj_bytes: bytes | None = None
    events: queue.Queue | None = field(default_factory=queue.Queue)
    errors: queue.Queue | None = field(default_factory=queue.Queue)
    done: threading.Event | None = field(default_factory=threading.Event)

    def validate(self, known_events: Mapping[int, Iterable[str]]) -> None:
        """Check the configuration against ``known_events``.

        ``known_events`` maps every known event id to its parameter names.
        Raises :class:`ConfigError` on the first problem found.
        """
        if self.events_to_trace is None:
            raise ConfigError("Filter or EventsToTrace is nil")

        for event_id in self.events_to_trace:
            if event_id not in known_events:
                raise ConfigError(f"invalid event to trace: {event_id}")

        for event_id, filters in self.arg_filters.items():
            for arg_name in filters:
                if event_id not in known_events:
                    raise ConfigError(f"invalid argument filter event id: {event_id}")
                if arg_name not in set(known_events[event_id]):
                    raise ConfigError(
                        f"invalid argument filter argument name: {arg_name}"
                    )

        for size in (self.perf_buffer_size, self.blob_perf_buffer_size):
            if size & (size - 1) != 0:
                raise ConfigError("invalid perf buffer size - must be a power of 2")

        path_filters = self.capture.filter_file_write
        if len(path_filters) > MAX_FILE_WRITE_FILTERS:
            raise ConfigError("too many file-write filters given")
        for path_filter in path_filters:
            if len(path_filter) > MAX_PATH_FILTER_LENGTH:
                raise ConfigError(
                    "the length of a path filter is limited to "
                    f"{MAX_PATH_FILTER_LENGTH} characters: {path_filter}"
                )

        if self.bpf_obj_bytes is None:
            raise ConfigError("nil bpf object in memory")
        if self.events is None:
            raise ConfigError("nil events channel")
        if self.errors is None:
            raise ConfigError("nil errors channel")
        if self.done is None:
            raise ConfigError("nil done channel")


def _monotonic_ns() -> int:
    clock = getattr(time, "CLOCK_MONOTONIC", None)
    if clock is not None:
        return time.clock_gettime_ns(clock)
    return time.monotonic_ns()


def compute_boot_time() -> int:
    """Return the boot time in nanoseconds since the epoch.

    It is derived from the monotonic clock, which the kernel side uses for
    event timestamps, so it ignores time the system spent asleep.
    """
    return time.time_ns() - _monotonic_ns()