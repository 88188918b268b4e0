"""Report the depth of a device inbox as it changes.

Fog devices queue tuples awaiting service in a :class:`simpy.Store`. Probing
the store wraps its internal put and get handlers so that every change in the
number of queued tuples is passed to the log and VCD tracers.

"""
from functools import wraps
from typing import Any, Callable, Iterable

import simpy

ProbeCallback = Callable[[Any], None]
ProbeCallbacks = Iterable[ProbeCallback]


def attach(scope: str, inbox: simpy.Store, callbacks: ProbeCallbacks) -> None:
    if not isinstance(inbox, simpy.Store):
        raise TypeError(f'Cannot probe {scope} of type {type(inbox)}')
    callbacks = list(callbacks)

    def report_depth(handler):
        @wraps(handler)
        def wrapper(*args, **kwargs):
            before = len(inbox.items)
            ret = handler(*args, **kwargs)
            depth = len(inbox.items)
            if depth != before:
                for callback in callbacks:
                    callback(depth)
            return ret

        return wrapper

    inbox._do_put = report_depth(inbox._do_put)
    inbox._do_get = report_depth(inbox._do_get)
