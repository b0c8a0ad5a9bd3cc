"""Rule engine that routes events to signatures and collects their findings."""

from __future__ import annotations

import dataclasses
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable

from .types import (
    Event,
    Finding,
    Signature,
    SignalSourceComplete,
    SignatureEventSelector,
    SignatureMetadata,
)

ALL_EVENT_ORIGINS = "*"
EVENT_CONTAINER_ORIGIN = "container"
EVENT_HOST_ORIGIN = "host"
ALL_EVENT_TYPES = "*"
TRACEE_SOURCE = "tracee"

_CLOSED = object()
_POLL_INTERVAL = 0.05


@dataclass
class EventSources:
    """Input queues feeding the engine."""

    tracee: queue.Queue | None = field(default_factory=queue.Queue)

    def close(self) -> None:
        """Mark the event source as finished."""
        if self.tracee is not None:
            self.tracee.put(_CLOSED)


@dataclass
class ParsedEvent:
    """An event together with its unstructured representation."""

    event: Event
    value: dict[str, Any]


def to_parsed_event(event: Event) -> ParsedEvent:
    """Attach the unstructured form to an event so it is built only once."""
    return ParsedEvent(event=event, value=event.to_unstructured())


def analyze_event_origin(event: Event) -> str:
    """Tell whether an event came from a container or from the host."""
    if event.container_id != "" or event.process_id != event.host_process_id:
        return EVENT_CONTAINER_ORIGIN
    return EVENT_HOST_ORIGIN


def _normalize(selector: SignatureEventSelector) -> SignatureEventSelector:
    return dataclasses.replace(
        selector,
        name=selector.name or ALL_EVENT_TYPES,
        origin=selector.origin or ALL_EVENT_ORIGINS,
    )


class Engine:
    """Processes events from input sources against loaded signatures."""

    def __init__(self, signatures, sources, output, log_writer, parsed_events=False):
        if sources is None or sources.tracee is None or output is None or log_writer is None:
            raise ValueError("nil input received")
        self._sources: EventSources = sources
        self._output = output
        self._log_writer = log_writer
        self._log_lock = threading.Lock()
        self._parsed_events = parsed_events
        self._lock = threading.RLock()
        self._signatures: dict[Signature, queue.Queue] = {}
        self._index: dict[SignatureEventSelector, list[Signature]] = {}
        self._workers: list[threading.Thread] = []
        self._started: set[Signature] = set()

        signatures = list(signatures)
        for signature in signatures:
            with self._lock:
                self._signatures[signature] = queue.Queue()
            try:
                metadata = signature.get_metadata()
            except Exception as err:
                self._log(f"error getting metadata: {err}")
                continue
            try:
                selected = signature.get_selected_events()
            except Exception as err:
                self._log(
                    f"error getting selected events for signature {metadata.name}: {err}"
                )
                continue
            self._index_signature(signature, selected, metadata)
            try:
                signature.init(self._match_handler)
            except Exception as err:
                self._log(f"error initializing signature {metadata.name}: {err}")

        with self._lock:
            registered = len(self._signatures)
        if registered != len(signatures):
            raise ValueError("one or more signatures are not uniquely identifiable")

    def _log(self, message: str) -> None:
        with self._log_lock:
            self._log_writer.write(message + "\n")

    def _index_signature(
        self,
        signature: Signature,
        selected: Iterable[SignatureEventSelector],
        metadata: SignatureMetadata,
    ) -> None:
        for selector in selected:
            selector = _normalize(selector)
            if selector.source == "":
                self._log(f"signature {metadata.name} doesn't declare an input source")
                continue
            with self._lock:
                self._index.setdefault(selector, []).append(signature)

    @staticmethod
    def _metadata_of(signature: Signature) -> SignatureMetadata:
        try:
            return signature.get_metadata()
        except Exception:
            return SignatureMetadata()

    def _match_handler(self, finding: Finding) -> None:
        self._output.put(finding)

    def _spawn_worker(self, signature: Signature, events: queue.Queue) -> None:
        with self._lock:
            if signature in self._started:
                return
            self._started.add(signature)
            worker = threading.Thread(
                target=self._run_signature, args=(signature, events), daemon=True
            )
            self._workers.append(worker)
        worker.start()

    def _run_signature(self, signature: Signature, events: queue.Queue) -> None:
        while True:
            item = events.get()
            if item is _CLOSED:
                return
            try:
                signature.on_event(item)
            except Exception as err:
                name = self._metadata_of(signature).name
                self._log(f"error handling event by signature {name}: {err}")

    def start(self, done: threading.Event) -> None:
        """Process events until the source closes or ``done`` is set.

        Afterwards every signature is unloaded, so the engine is not reusable.
        """
        try:
            with self._lock:
                items = list(self._signatures.items())
            for signature, events in items:
                self._spawn_worker(signature, events)
            self._consume_sources(done)
        finally:
            self._unload_all_signatures()

    def _unload_all_signatures(self) -> None:
        with self._lock:
            for signature, events in self._signatures.items():
                signature.close()
                events.put(_CLOSED)
            self._signatures.clear()
            self._index.clear()

    def _consume_sources(self, done: threading.Event) -> None:
        while not done.is_set():
            source = self._sources.tracee
            if source is None:
                return
            try:
                item = source.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if item is _CLOSED:
                self._signal_source_complete()
                self._sources.tracee = None
                self._complete()
                return
            if item is not None:
                self._route(item)

    def _signal_source_complete(self) -> None:
        with self._lock:
            signatures = list(self._signatures)
        for signature in signatures:
            try:
                selected = signature.get_selected_events()
            except Exception as err:
                self._log(f"error getting selected events: {err}")
                continue
            if any(sel.source == TRACEE_SOURCE for sel in selected):
                try:
                    signature.on_signal(SignalSourceComplete(TRACEE_SOURCE))
                except Exception:
                    pass

    def _complete(self) -> None:
        self._unload_all_signatures()
        with self._lock:
            workers = list(self._workers)
        for worker in workers:
            worker.join()

    def _route(self, event: Any) -> None:
        if not isinstance(event, Event):
            self._log("invalid event received (should be of type tracee.Event)")
            return
        origin = analyze_event_origin(event)
        keys = (
            SignatureEventSelector(TRACEE_SOURCE, event.event_name, origin),
            SignatureEventSelector(TRACEE_SOURCE, event.event_name, ALL_EVENT_ORIGINS),
            SignatureEventSelector(TRACEE_SOURCE, ALL_EVENT_TYPES, origin),
            SignatureEventSelector(TRACEE_SOURCE, ALL_EVENT_TYPES, ALL_EVENT_ORIGINS),
        )
        with self._lock:
            for key in keys:
                for signature in list(self._index.get(key, ())):
                    self._dispatch(signature, event)

    def _dispatch(self, signature: Signature, event: Event) -> None:
        events = self._signatures.get(signature)
        if events is None:
            return
        if self._parsed_events and signature.accepts_parsed_events:
            try:
                parsed = to_parsed_event(event)
            except Exception as err:
                self._log(f"error converting event to parsed value: {err}")
                return
            events.put(parsed)
        else:
            events.put(event)

    def load_signature(self, signature: Signature) -> str:
        """Register a signature, start handling its events and return its ID."""
        try:
            selected = signature.get_selected_events()
        except Exception as err:
            raise RuntimeError(f"failed to store signature: {err}") from err
        metadata = self._metadata_of(signature)
        with self._lock:
            if signature in self._signatures:
                return metadata.id
            events: queue.Queue = queue.Queue()
            self._signatures[signature] = events
            self._index_signature(signature, selected, metadata)
            try:
                signature.init(self._match_handler)
            except Exception as err:
                self._log(f"error initializing signature {metadata.name}: {err}")
        self._spawn_worker(signature, events)
        return metadata.id

    def unload_signature(self, signature_id: str) -> None:
        """Remove the signature with the given ID and stop its handling."""
        with self._lock:
            found = next(
                (
                    sig
                    for sig in self._signatures
                    if self._metadata_of(sig).id == signature_id
                ),
                None,
            )
        if found is None:
            raise LookupError(f"could not find signature with ID: {signature_id}")
        try:
            selected = found.get_selected_events()
        except Exception as err:
            raise RuntimeError(f"failed to unload signature: {err}") from err
        with self._lock:
            for selector in map(_normalize, selected):
                remaining = [
                    sig
                    for sig in self._index.get(selector, [])
                    if self._metadata_of(sig).id != signature_id
                ]
                if remaining:
                    self._index[selector] = remaining
                else:
                    self._index.pop(selector, None)
            events = self._signatures.pop(found, None)
        if events is not None:
            events.put(_CLOSED)
            found.close()

    def get_selected_events(self) -> list[SignatureEventSelector]:
        """Return the selectors relevant to the loaded signatures."""
        with self._lock:
            return list(self._index)