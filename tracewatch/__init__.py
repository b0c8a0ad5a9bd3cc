"""Runtime security event processing: rule engine, signatures, file-write capture, process context, profiling, configuration and stats."""

__version__ = "0.1.0"

__all__ = [
    "capture",
    "config",
    "engine",
    "namespaces",
    "procctx",
    "profiler",
    "signatures",
    "stats",
    "types",
]