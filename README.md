# tracewatch

Building blocks for processing runtime security events on Linux. The package
has no third-party dependencies.

## What is in it

- **`tracewatch.types`**: the event model (`Event`, `Argument`, `ArgMeta`).
  `Event.get_argument(name)` raises `ArgumentNotFoundError` when the argument
  is missing, and `Event.to_unstructured()` returns the event as plain dicts.
  The module also holds the signature API: the abstract `Signature` class,
  `SignatureMetadata`, `SignatureEventSelector`, `Finding` and
  `SignalSourceComplete`.
- **`tracewatch.engine`**: `Engine` reads events from an `EventSources` queue
  and sends each one to the signatures whose selectors match it. A selector
  matches on source, event name and origin, and `analyze_event_origin` decides
  whether an event's origin is `host` or `container`. An empty name or origin
  in a selector means "any". Each signature runs in its own thread. Findings go
  to the output queue, and problems are written as lines to the log writer.
  Signatures can be added and removed at run time with `load_signature` and
  `unload_signature`. `get_selected_events` lists the active selectors. If the
  engine is built with `parsed_events=True`, signatures whose
  `accepts_parsed_events` is true receive a `ParsedEvent` instead of the plain
  event (see `to_parsed_event`).
- **`tracewatch.signatures`**: three ready-made detections.
  `AntiDebuggingSignature` reports `ptrace` calls with `PTRACE_TRACEME`.
  `CodeInjectionSignature` reports `open`/`openat` calls that write to
  `/proc/<pid>/mem` or `/proc/self/mem`, and `ptrace` calls with
  `PTRACE_POKETEXT` or `PTRACE_POKEDATA`. `NoopSignature` subscribes to nothing.
- **`tracewatch.capture`**: `FileWriteCapture.process(data)` decodes one raw
  capture chunk (`parse_chunk`, `ChunkMeta`, `BinType`). It writes the chunk
  to `<output>/<container id or "host">/<name>` and returns the path written.
  The name comes from `capture_file_name`. Sockets, character devices and FIFOs
  are appended to, and other files are written at the chunk offset. When the
  last chunk of a kernel module arrives, the file is renamed to end in its
  SHA-256 hash. A malformed chunk raises `CaptureError`.
- **`tracewatch.procctx`**: the `ProcessCtx` record. `parse_process_context`
  decodes a packed little-endian context record. `parse_proc_status`,
  `get_ns_id_data` and `get_file_ctime` read a task's status file and its
  namespace links. `ProcessTree.from_proc()` scans `/proc`, or another root,
  into a map keyed by host thread id, and `ProcessTree.get(host_tid)` looks a
  task up.
- **`tracewatch.profiler`**: `Profiler.update_profile` counts executions of
  captured binaries and keeps the first timestamp it saw.
  `Profiler.update_file_sha` hashes the captured copies, and
  `Profiler.write_stats` writes the profile as indented JSON.
  `compute_file_hash` returns a file's SHA-256. `write_written_files_index`
  appends `name path` lines to a `written_files` index, listing only the paths
  that start with every filter prefix.
- **`tracewatch.config`**: the `Config`, `CaptureConfig` and `OutputConfig`
  dataclasses. `Config.validate(known_events)` raises `ConfigError` for an
  unknown event or argument filter, for a buffer size that is not a power of
  two, for more than 3 file-write filters, for a filter longer than 50
  characters, and for a missing BPF object or queue. `compute_boot_time`
  derives the boot time from the monotonic clock.
- **`tracewatch.stats`**: the thread-safe `Counter`, and `StatsStore`, whose
  `snapshot()` returns a frozen `Stats`. The module also has the `BpfConfig`
  and `TailCall` numeric identifiers and `bool_to_u32`.
- **`tracewatch.namespaces`**: `fetch_init_namespaces` reads the namespace
  numbers under `/proc/1/ns`, using `parse_ns_link` for each link.
  `create_init_namespaces_event` builds an `init_namespaces` event from them.

## Installation

```
pip install .
pip install ".[test]"   # with the test dependencies
```

## Example

```python
import io
import queue
import threading

from tracewatch.engine import Engine, EventSources
from tracewatch.signatures import AntiDebuggingSignature
from tracewatch.types import Argument, Event

sources = EventSources()
findings = queue.Queue()
log = io.StringIO()
engine = Engine([AntiDebuggingSignature()], sources, findings, log, False)

done = threading.Event()
runner = threading.Thread(target=engine.start, args=(done,))
runner.start()

sources.tracee.put(Event(
    event_name="ptrace",
    args=[Argument(name="request", value="PTRACE_TRACEME")],
))

finding = findings.get(timeout=1)
print(finding.sig_metadata.name, finding.data)   # Anti-Debugging {'ptrace request': 'PTRACE_TRACEME'}

done.set()
runner.join()
```

`engine.start` returns when `done` is set or when the source is closed with
`sources.close()`. It then unloads every signature, so an engine cannot be
started twice.

## What it does not do

The package processes events and capture data that some other component
supplies. It does not load or attach kernel tracing programs and does not
collect events from the kernel. It does not capture network packets or write
pcap files. It has no command-line tool. It does not evaluate policy-language
signatures: the only signatures it provides are the Python classes in
`tracewatch.signatures` and any subclasses of `tracewatch.types.Signature`
that you write.

## Running the tests

```
pytest
```