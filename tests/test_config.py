import time

import pytest

from tracewatch.config import (
    CaptureConfig,
    Config,
    ConfigError,
    compute_boot_time,
)

KNOWN = {1: ["pathname", "flags"], 2: ["fd"], 3: []}


def make_config(**kwargs):
    kwargs.setdefault("events_to_trace", [1, 2])
    kwargs.setdefault("bpf_obj_bytes", b"\x7fELF")
    return Config(**kwargs)


def test_missing_events_to_trace():
    cfg = make_config(events_to_trace=None)
    with pytest.raises(ConfigError, match="Filter or EventsToTrace is nil"):
        cfg.validate(KNOWN)


def test_unknown_event_to_trace():
    cfg = make_config(events_to_trace=[1, 99])
    with pytest.raises(ConfigError, match="invalid event to trace: 99"):
        cfg.validate(KNOWN)


def test_unknown_arg_filter_event():
    cfg = make_config(arg_filters={42: {"pathname": "/tmp"}})
    with pytest.raises(ConfigError, match="invalid argument filter event id: 42"):
        cfg.validate(KNOWN)


def test_unknown_arg_filter_name():
    cfg = make_config(arg_filters={1: {"mode": "x"}})
    with pytest.raises(
        ConfigError, match="invalid argument filter argument name: mode"
    ):
        cfg.validate(KNOWN)


def test_known_arg_filter_passes_until_later_check():
    cfg = make_config(arg_filters={1: {"pathname": "/tmp"}}, bpf_obj_bytes=None)
    with pytest.raises(ConfigError, match="nil bpf object in memory"):
        cfg.validate(KNOWN)


@pytest.mark.parametrize("field_name", ["perf_buffer_size", "blob_perf_buffer_size"])
@pytest.mark.parametrize("size", [3, 1000, 1025])
def test_perf_buffer_must_be_power_of_two(field_name, size):
    cfg = make_config(**{field_name: size})
    with pytest.raises(ConfigError, match="must be a power of 2"):
        cfg.validate(KNOWN)


@pytest.mark.parametrize("size", [1, 2, 64, 4096])
def test_power_of_two_sizes_reach_later_checks(size):
    cfg = make_config(perf_buffer_size=size, blob_perf_buffer_size=size, events=None)
    with pytest.raises(ConfigError, match="nil events channel"):
        cfg.validate(KNOWN)


def test_too_many_file_write_filters():
    cfg = make_config(
        capture=CaptureConfig(filter_file_write=["/a", "/b", "/c", "/d"])
    )
    with pytest.raises(ConfigError, match="too many file-write filters given"):
        cfg.validate(KNOWN)


def test_path_filter_too_long():
    long_filter = "/" + "x" * 50
    cfg = make_config(capture=CaptureConfig(filter_file_write=[long_filter]))
    with pytest.raises(ConfigError, match="limited to 50 characters"):
        cfg.validate(KNOWN)


def test_path_filter_of_fifty_characters_is_allowed():
    cfg = make_config(
        capture=CaptureConfig(filter_file_write=["/" + "x" * 49]), errors=None
    )
    with pytest.raises(ConfigError, match="nil errors channel"):
        cfg.validate(KNOWN)


def test_nil_done_channel():
    cfg = make_config(done=None)
    with pytest.raises(ConfigError, match="nil done channel"):
        cfg.validate(KNOWN)


def test_config_error_is_value_error():
    cfg = make_config(bpf_obj_bytes=None)
    with pytest.raises(ValueError):
        cfg.validate(KNOWN)


def test_boot_time_is_in_the_past():
    boot = compute_boot_time()
    assert 0 < boot <= time.time_ns()