"""Built-in signatures written directly against the event model."""

from __future__ import annotations

import re
from typing import Any

from .types import (
    Event,
    Finding,
    SignalSourceComplete,
    Signature,
    SignatureEventSelector,
    SignatureHandler,
    SignatureMetadata,
)

_TRACEE = "tracee"
_PROCESS_MEM_FILE = re.compile(r"/proc/(?:\d.+|self)/mem")
_WRITE_FLAGS = ("o_wronly", "o_rdwr")


def _is_file_write(flags: str) -> bool:
    lowered = flags.lower()
    return any(flag in lowered for flag in _WRITE_FLAGS)


def _require_event(event: Any) -> Event:
    if not isinstance(event, Event):
        raise TypeError("invalid event")
    return event


class _BaseSignature(Signature):
    """Common state handling for the signatures in this module."""

    def __init__(self, metadata: SignatureMetadata | None = None) -> None:
        self._metadata = metadata if metadata is not None else SignatureMetadata()
        self._callback: SignatureHandler | None = None
        self.completed_sources: set[str] = set()

    def init(self, callback: SignatureHandler) -> None:
        """Store the callback that receives findings."""
        self._callback = callback

    def get_metadata(self) -> SignatureMetadata:
        """Describe the signature."""
        return self._metadata

    def on_signal(self, signal: Any) -> None:
        """Record input sources that have signalled completion."""
        if isinstance(signal, SignalSourceComplete):
            self.completed_sources.add(str(signal))

    def close(self) -> None:
        """Drop the findings callback."""
        self._callback = None

    def _emit(self, event: Event, data: dict[str, Any] | None) -> None:
        if self._callback is None:
            raise RuntimeError("signature is not initialized")
        self._callback(Finding(data=data, context=event, sig_metadata=self._metadata))


class AntiDebuggingSignature(_BaseSignature):
    """Detects a process asking to be traced by its parent to block debuggers."""

    def __init__(self) -> None:
        super().__init__(
            SignatureMetadata(
                name="Anti-Debugging",
                description="Process uses anti-debugging technique to block debugger",
                tags=["linux", "container"],
                properties={
                    "Severity": 3,
                    "MITRE ATT&CK": "Defense Evasion: Execution Guardrails",
                },
            )
        )

    def init(self, callback: SignatureHandler) -> None:
        """Store the callback that receives findings."""
        super().init(callback)

    def get_metadata(self) -> SignatureMetadata:
        """Describe the signature."""
        return super().get_metadata()

    def get_selected_events(self) -> list[SignatureEventSelector]:
        """Subscribe to ptrace events."""
        return [SignatureEventSelector(source=_TRACEE, name="ptrace")]

    def on_event(self, event: Any) -> None:
        """Report ptrace calls made with PTRACE_TRACEME."""
        event = _require_event(event)
        if event.event_name != "ptrace":
            return
        request = event.get_argument("request").value
        if request != "PTRACE_TRACEME":
            return
        self._emit(event, {"ptrace request": request})

    def on_signal(self, signal: Any) -> None:
        """Record input sources that have signalled completion."""
        super().on_signal(signal)

    def close(self) -> None:
        """Drop the findings callback."""
        super().close()


class CodeInjectionSignature(_BaseSignature):
    """Detects writes into another process's memory."""

    def __init__(self) -> None:
        super().__init__(
            SignatureMetadata(
                name="Code injection",
                description="Possible process injection detected during runtime",
                tags=["linux", "container"],
                properties={
                    "Severity": 3,
                    "MITRE ATT&CK": "Defense Evasion: Process Injection",
                },
            )
        )

    def init(self, callback: SignatureHandler) -> None:
        """Store the callback that receives findings."""
        super().init(callback)

    def get_metadata(self) -> SignatureMetadata:
        """Describe the signature."""
        return super().get_metadata()

    def get_selected_events(self) -> list[SignatureEventSelector]:
        """Subscribe to ptrace, open, openat and execve events."""
        return [
            SignatureEventSelector(source=_TRACEE, name=name)
            for name in ("ptrace", "open", "openat", "execve")
        ]

    def on_event(self, event: Any) -> None:
        """Report memory-file writes and poking ptrace requests."""
        event = _require_event(event)
        if event.event_name in ("open", "openat"):
            flags = event.get_argument("flags")
            if not _is_file_write(flags.value):
                return
            pathname = event.get_argument("pathname").value
            if _PROCESS_MEM_FILE.search(pathname):
                self._emit(event, {"file flags": flags, "file path": pathname})
        elif event.event_name == "ptrace":
            request = event.get_argument("request").value
            if request in ("PTRACE_POKETEXT", "PTRACE_POKEDATA"):
                self._emit(event, {"ptrace request": request})

    def on_signal(self, signal: Any) -> None:
        """Record input sources that have signalled completion."""
        super().on_signal(signal)

    def close(self) -> None:
        """Drop the findings callback."""
        super().close()


class NoopSignature(_BaseSignature):
    """A signature that subscribes to nothing and never reports."""

    def init(self, callback: SignatureHandler) -> None:
        """Store the callback that receives findings."""
        super().init(callback)

    def get_metadata(self) -> SignatureMetadata:
        """Return empty metadata."""
        return super().get_metadata()

    def get_selected_events(self) -> list[SignatureEventSelector]:
        """Subscribe to no events."""
        return []

    def on_event(self, event: Any) -> None:
        """Ignore the event."""

    def on_signal(self, signal: Any) -> None:
        """Record input sources that have signalled completion."""
        super().on_signal(signal)

    def close(self) -> None:
        """Drop the findings callback."""
        super().close()