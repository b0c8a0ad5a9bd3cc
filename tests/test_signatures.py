import io
import queue
import threading

import pytest

from tracewatch.engine import Engine, EventSources
from tracewatch.signatures import (
    AntiDebuggingSignature,
    CodeInjectionSignature,
    NoopSignature,
)
from tracewatch.types import (
    ArgumentNotFoundError,
    Argument,
    Event,
    SignatureEventSelector,
    SignatureMetadata,
)

INNOCENT_EVENT = Event(
    timestamp=7126141189,
    process_id=1,
    thread_id=1,
    parent_process_id=4798,
    host_process_id=4819,
    host_thread_id=4819,
    host_parent_process_id=4798,
    user_id=0,
    mount_ns=4026532256,
    pid_ns=4026532259,
    process_name="cadvisor",
    host_name="4213291591ab",
    event_id=257,
    event_name="openat",
    args_num=4,
    return_value=14,
    args=[
        Argument(name="dirfd", type="int", value=-100),
        Argument(
            name="pathname",
            type="const char",
            value="/sys/fs/cgroup/cpu,cpuacct/cpuacct.stat",
        ),
        Argument(name="flags", type="int", value="O_RDONLY|O_CLOEXEC"),
        Argument(name="mode", type="mode_t", value=5038682),
    ],
)

PTRACE_INJECT_EVENT = Event(
    timestamp=6123321183,
    process_id=1,
    thread_id=1,
    parent_process_id=3788,
    host_process_id=3217,
    host_thread_id=3217,
    host_parent_process_id=3788,
    user_id=0,
    mount_ns=2983424533,
    pid_ns=2983424536,
    process_name="injector",
    host_name="234134134ab",
    event_id=328,
    event_name="ptrace",
    args_num=2,
    return_value=0,
    args=[Argument(name="request", value="PTRACE_POKETEXT")],
)

OPEN_INJECT_EVENT = Event(
    timestamp=5123321532,
    process_id=1,
    thread_id=1,
    parent_process_id=3788,
    host_process_id=3217,
    host_thread_id=3217,
    host_parent_process_id=3788,
    user_id=0,
    mount_ns=2983424533,
    pid_ns=2983424536,
    process_name="injector",
    host_name="234134134ab",
    event_id=477,
    event_name="open",
    args_num=2,
    return_value=0,
    args=[
        Argument(name="flags", value="o_wronly"),
        Argument(name="pathname", value="/proc/self/mem"),
    ],
)

ANTI_DEBUGGING_EVENT = Event(
    timestamp=5323321532,
    process_id=1,
    thread_id=1,
    parent_process_id=3788,
    host_process_id=3217,
    host_thread_id=3217,
    host_parent_process_id=3788,
    user_id=0,
    mount_ns=2983424533,
    pid_ns=2983424536,
    process_name="malware",
    host_name="234134134ab",
    event_id=521,
    event_name="ptrace",
    args_num=2,
    return_value=124,
    args=[Argument(name="request", value="PTRACE_TRACEME")],
)


def _initialized(signature):
    findings = []
    signature.init(findings.append)
    return signature, findings


def _run_engine(signatures, events):
    sources = EventSources()
    for event in events:
        sources.tracee.put(event)
    sources.close()
    output = queue.Queue()
    log = io.StringIO()
    engine = Engine(signatures, sources, output, log, False)
    engine.start(threading.Event())
    findings = []
    while not output.empty():
        findings.append(output.get_nowait())
    return findings


def test_code_injection_ptrace_poketext():
    sig, findings = _initialized(CodeInjectionSignature())
    sig.on_event(PTRACE_INJECT_EVENT)
    assert len(findings) == 1
    assert findings[0].data == {"ptrace request": "PTRACE_POKETEXT"}
    assert findings[0].context is PTRACE_INJECT_EVENT
    assert findings[0].sig_metadata.name == "Code injection"


def test_code_injection_open_of_process_memory():
    sig, findings = _initialized(CodeInjectionSignature())
    sig.on_event(OPEN_INJECT_EVENT)
    assert len(findings) == 1
    assert findings[0].data["file path"] == "/proc/self/mem"
    assert findings[0].data["file flags"].value == "o_wronly"


def test_code_injection_ignores_read_only_open():
    sig, findings = _initialized(CodeInjectionSignature())
    sig.on_event(INNOCENT_EVENT)
    assert findings == []


def test_code_injection_ignores_traceme():
    sig, findings = _initialized(CodeInjectionSignature())
    sig.on_event(ANTI_DEBUGGING_EVENT)
    assert findings == []


def test_code_injection_missing_flags_raises():
    sig, _ = _initialized(CodeInjectionSignature())
    with pytest.raises(ArgumentNotFoundError):
        sig.on_event(Event(event_name="open"))


def test_code_injection_rejects_non_event():
    sig, _ = _initialized(CodeInjectionSignature())
    with pytest.raises(TypeError, match="invalid event"):
        sig.on_event("not an event")


def test_code_injection_selected_events():
    names = [sel.name for sel in CodeInjectionSignature().get_selected_events()]
    assert names == ["ptrace", "open", "openat", "execve"]


def test_anti_debugging_reports_traceme():
    sig, findings = _initialized(AntiDebuggingSignature())
    sig.on_event(ANTI_DEBUGGING_EVENT)
    assert len(findings) == 1
    assert findings[0].data == {"ptrace request": "PTRACE_TRACEME"}
    assert findings[0].sig_metadata.name == "Anti-Debugging"


def test_anti_debugging_ignores_other_requests_and_events():
    sig, findings = _initialized(AntiDebuggingSignature())
    sig.on_event(PTRACE_INJECT_EVENT)
    sig.on_event(INNOCENT_EVENT)
    assert findings == []


def test_anti_debugging_metadata_and_selectors():
    sig = AntiDebuggingSignature()
    metadata = sig.get_metadata()
    assert metadata.properties["Severity"] == 3
    assert metadata.tags == ["linux", "container"]
    assert sig.get_selected_events() == [
        SignatureEventSelector(source="tracee", name="ptrace")
    ]


def test_anti_debugging_rejects_non_event():
    sig, _ = _initialized(AntiDebuggingSignature())
    with pytest.raises(TypeError):
        sig.on_event(42)


def test_noop_signature():
    sig, findings = _initialized(NoopSignature())
    sig.on_event(ANTI_DEBUGGING_EVENT)
    assert findings == []
    assert sig.get_metadata() == SignatureMetadata()
    assert sig.get_selected_events() == []