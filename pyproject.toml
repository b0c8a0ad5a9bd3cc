[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tracewatch"
version = "0.1.0"
description = "Runtime security event processing: a signature rule engine, file-write capture, process context and profiling helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["security", "runtime", "tracing", "signatures", "rules-engine", "forensics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tracewatch"]

[tool.pytest.ini_options]
addopts = "-ra"
