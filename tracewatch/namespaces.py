"""Events generated in user space describing the init process namespaces."""

from __future__ import annotations

import os
import re
import time
from typing import Iterable

from .types import ArgMeta, Argument, Event

INIT_PROC_NS_DIR = "/proc/1/ns"
INIT_NAMESPACES_EVENT_NAME = "init_namespaces"
PROCESS_NAME = "tracee-ebpf"

_NS_VALUE = re.compile(r":[\[0-9]*\]")
_U32_MAX = 0xFFFFFFFF


def parse_ns_link(link: str) -> int:
    """Extract the namespace number from a link such as ``mnt:[4026531840]``.

    Links without a number give 0; numbers beyond 32 bits saturate.
    """
    match = _NS_VALUE.search(link)
    digits = match.group(0).strip("[]:") if match else ""
    if not digits.isdigit():
        return 0
    return min(int(digits), _U32_MAX)


def fetch_init_namespaces(ns_dir: str | os.PathLike = INIT_PROC_NS_DIR) -> dict[str, int]:
    """Map each namespace link under ``ns_dir`` to its number.

    An unreadable directory gives an empty map; an unreadable link gives 0.
    """
    try:
        names = sorted(os.listdir(ns_dir))
    except OSError:
        return {}
    namespaces: dict[str, int] = {}
    for name in names:
        try:
            link = os.readlink(os.path.join(ns_dir, name))
        except OSError:
            link = ""
        namespaces[name] = parse_ns_link(link)
    return namespaces


def create_init_namespaces_event(
    param_names: Iterable[str | ArgMeta],
    ns_dir: str | os.PathLike = INIT_PROC_NS_DIR,
) -> Event:
    """Build an event carrying the init process namespaces.

    One argument is produced per parameter, in order; a namespace that is
    not found gets the value 0.
    """
    namespaces = fetch_init_namespaces(ns_dir)
    args = []
    for param in param_names:
        meta = param if isinstance(param, ArgMeta) else ArgMeta(name=param)
        args.append(
            Argument(
                name=meta.name,
                type=meta.type,
                value=namespaces.get(meta.name, 0),
            )
        )
    return Event(
        timestamp=time.time_ns(),
        process_name=PROCESS_NAME,
        event_name=INIT_NAMESPACES_EVENT_NAME,
        args_num=len(args),
        args=args,
    )