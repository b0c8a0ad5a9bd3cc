"""Public types shared by the rule engine and its signatures."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar


@dataclass
class ArgMeta:
    """Name and declared type of an event argument."""

    name: str = ""
    type: str = ""


@dataclass
class Argument(ArgMeta):
    """An event argument: its metadata plus the captured value."""

    value: Any = None


class ArgumentNotFoundError(LookupError):
    """Raised when an event carries no argument of the requested name."""


@dataclass
class Event:
    """A traced event as produced by the tracing side."""

    timestamp: int = 0
    process_id: int = 0
    thread_id: int = 0
    parent_process_id: int = 0
    host_process_id: int = 0
    host_thread_id: int = 0
    host_parent_process_id: int = 0
    user_id: int = 0
    mount_ns: int = 0
    pid_ns: int = 0
    process_name: str = ""
    host_name: str = ""
    container_id: str = ""
    event_id: int = 0
    event_name: str = ""
    args_num: int = 0
    return_value: int = 0
    args: list[Argument] = field(default_factory=list)

    def get_argument(self, name: str) -> Argument:
        """Return the first argument called ``name``."""
        for argument in self.args:
            if argument.name == name:
                return argument
        raise ArgumentNotFoundError(f"argument {name} not found")

    def to_unstructured(self) -> dict[str, Any]:
        """Return the event as plain dicts and lists, keyed as in its JSON form."""
        return {
            "timestamp": self.timestamp,
            "processId": self.process_id,
            "threadId": self.thread_id,
            "parentProcessId": self.parent_process_id,
            "hostProcessId": self.host_process_id,
            "hostThreadId": self.host_thread_id,
            "hostParentProcessId": self.host_parent_process_id,
            "userId": self.user_id,
            "mountNamespace": self.mount_ns,
            "pidNamespace": self.pid_ns,
            "processName": self.process_name,
            "hostName": self.host_name,
            "containerId": self.container_id,
            "eventId": self.event_id,
            "eventName": self.event_name,
            "argsNum": self.args_num,
            "returnValue": self.return_value,
            "args": [
                {"name": arg.name, "type": arg.type, "value": arg.value}
                for arg in self.args
            ],
        }


@dataclass
class SignatureMetadata:
    """Information a signature declares about itself."""

    id: str = ""
    version: str = ""
    name: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SignatureEventSelector:
    """An event a signature subscribes to."""

    source: str = ""
    name: str = ""
    origin: str = ""


@dataclass
class Finding:
    """A match reported by a signature."""

    data: dict[str, Any] | None = None
    context: Any = None
    sig_metadata: SignatureMetadata = field(default_factory=SignatureMetadata)


class SignalSourceComplete(str):
    """Signal that an input source a signature subscribed to has ended."""


SignatureHandler = Callable[[Finding], None]


class Signature(ABC):
    """The unit of detection logic run by the engine."""

    #: Whether the engine may hand this signature pre-parsed events.
    accepts_parsed_events: ClassVar[bool] = False

    @abstractmethod
    def get_metadata(self) -> SignatureMetadata:
        """Describe the signature."""

    @abstractmethod
    def get_selected_events(self) -> list[SignatureEventSelector]:
        """Declare the events the signature subscribes to."""

    @abstractmethod
    def init(self, callback: SignatureHandler) -> None:
        """Prepare internal state; ``callback`` receives findings."""

    @abstractmethod
    def close(self) -> None:
        """Release what ``init`` set up."""

    @abstractmethod
    def on_event(self, event: Any) -> None:
        """Process one event."""

    @abstractmethod
    def on_signal(self, signal: Any) -> None:
        """Handle a lifecycle signal."""