"""Log and waveform tracing for fog simulations.

Tracers are enabled and scoped through configuration (``sim.log.*`` and
``sim.vcd.*``). Components obtain trace functions and probe their inboxes
through the environment's :class:`TraceManager`; callers pass per-tracer
hints such as ``log={'level': 'WARNING'}`` or ``vcd={'var_type': 'integer'}``
and only the tracers named in the hints take part.

"""
from typing import TYPE_CHECKING, Any, Callable, Generator, List, Optional, Union
import os
import re
import sys
import traceback

from vcd import VCDWriter
import simpy

from .probe import ProbeCallback
from .probe import attach as probe_attach
from .timescale import parse_time, scale_time

if TYPE_CHECKING:
    from .simulation import SimEnvironment

TraceCallback = Callable[..., None]
Time = Optional[Union[int, float]]


class Tracer:
    """Base for tracers configured under ``sim.<name>.*``.

    A disabled tracer opens nothing and accepts no scopes. An enabled one
    accepts the scopes matching one of ``include_pat`` and none of
    ``exclude_pat``.

    """

    name: str = ''

    def __init__(self, env: 'SimEnvironment'):
        self.env = env
        prefix = f'sim.{self.name}'
        self.enabled: bool = env.config.setdefault(f'{prefix}.enable', False)
        self.persist: bool = env.config.setdefault(f'{prefix}.persist', True)
        if self.enabled:
            self.open()
            self._include_re = [
                re.compile(pat)
                for pat in env.config.setdefault(f'{prefix}.include_pat', ['.*'])
            ]
            self._exclude_re = [
                re.compile(pat)
                for pat in env.config.setdefault(f'{prefix}.exclude_pat', [])
            ]

    def is_scope_enabled(self, scope: str) -> bool:
        return (
            self.enabled
            and any(r.match(scope) for r in self._include_re)
            and not any(r.match(scope) for r in self._exclude_re)
        )

    def open(self) -> None:
        raise NotImplementedError()  # pragma: no cover

    def close(self) -> None:
        raise NotImplementedError()  # pragma: no cover

    def remove_files(self) -> None:
        raise NotImplementedError()  # pragma: no cover

    def flush(self) -> None:
        pass

    def activate_probe(self, scope: str, inbox: simpy.Store, **hints: Any):
        raise NotImplementedError()  # pragma: no cover

    def activate_trace(self, scope: str, **hints: Any) -> Optional[TraceCallback]:
        raise NotImplementedError()  # pragma: no cover

    def trace_exception(self) -> None:
        pass


class LogTracer(Tracer):
    """Plain-text log of trace messages and inbox depths.

    Each line is prefixed with the level, the simulation time and the scope
    of the emitter, e.g.::

        WARNING 52.500 ms: fog.router: unrouted tuple RAW at gw: no outgoing edge

    """

    name = 'log'
    default_format = '{level:7} {ts:.3f} {ts_unit}: {scope}:'
    levels = {'ERROR': 1, 'WARNING': 2, 'INFO': 3, 'PROBE': 4, 'DEBUG': 5}

    def open(self) -> None:
        config = self.env.config
        self.filename: str = config.setdefault('sim.log.file', 'sim.log')
        buffering: int = config.setdefault('sim.log.buffering', -1)
        self.max_level = self.levels[config.setdefault('sim.log.level', 'INFO')]
        self.format_str: str = config.setdefault('sim.log.format', self.default_format)
        ts_n, ts_unit = self.env.timescale
        self.ts_unit = ts_unit if ts_n == 1 else f'({ts_n}{ts_unit})'
        if self.filename:
            self.file = open(self.filename, 'w', buffering)
            self.should_close = True
        else:
            self.file = sys.stderr
            self.should_close = False

    def flush(self) -> None:
        self.file.flush()

    def close(self) -> None:
        if self.should_close:
            self.file.close()

    def remove_files(self) -> None:
        if os.path.isfile(self.filename):
            os.remove(self.filename)

    def _prefix(self, level: str, scope: str) -> str:
        return self.format_str.format(
            level=level, ts=self.env.now, ts_unit=self.ts_unit, scope=scope
        )

    def _activate(self, scope: str, level: str) -> Optional[TraceCallback]:
        if self.levels[level] > self.max_level or not self.is_scope_enabled(scope):
            return None

        def log_callback(*value: Any) -> None:
            print(self._prefix(level, scope), *value, file=self.file)

        return log_callback

    def activate_probe(
        self, scope: str, inbox: simpy.Store, **hints: Any
    ) -> Optional[ProbeCallback]:
        return self._activate(scope, hints.get('level', 'PROBE'))

    def activate_trace(self, scope: str, **hints: Any) -> Optional[TraceCallback]:
        return self._activate(scope, hints.get('level', 'DEBUG'))

    def trace_exception(self) -> None:
        tb_lines = traceback.format_exception(*sys.exc_info())
        print(
            self._prefix('ERROR', 'Exception'),
            tb_lines[-1],
            '\n',
            *tb_lines,
            file=self.file,
        )


class VCDTracer(Tracer):
    """Value change dump of device inbox depth and busy state for GTKWave.

    ``sim.vcd.start_time`` and ``sim.vcd.stop_time`` limit dumping to a
    window of simulated time.

    """

    name = 'vcd'

    def open(self) -> None:
        config = self.env.config
        dump_filename: str = config.setdefault('sim.vcd.dump_file', 'sim.vcd')
        if 'sim.vcd.timescale' in config:
            mag, unit = parse_time(config['sim.vcd.timescale'])
        else:
            mag, unit = self.env.timescale
        if int(mag) != mag:
            raise ValueError(f'VCD timescale magnitude must be an integer, got {mag}')
        vcd_timescale = int(mag), unit
        self.scale_factor = scale_time(self.env.timescale, vcd_timescale)
        self.dump_file = open(dump_filename, 'w')
        self.vcd = VCDWriter(
            self.dump_file,
            timescale=vcd_timescale,
            check_values=config.setdefault('sim.vcd.check_values', True),
        )
        t_start = self._window_time(config.setdefault('sim.vcd.start_time', ''))
        t_stop = self._window_time(config.setdefault('sim.vcd.stop_time', ''))
        self.env.process(self._dump_window(t_start, t_stop))

    def _window_time(self, setting: str) -> Time:
        if not setting:
            return None
        return scale_time(parse_time(setting), self.env.timescale)

    def vcd_now(self) -> float:
        return self.env.now * self.scale_factor

    def flush(self) -> None:
        self.dump_file.flush()

    def close(self) -> None:
        self.vcd.close(self.vcd_now())
        self.dump_file.close()

    def remove_files(self) -> None:
        if os.path.isfile(self.dump_file.name):
            os.remove(self.dump_file.name)

    def _register(self, scope: str, hints: Any, **defaults: Any):
        kwargs = {k: hints[k] for k in ['size', 'init', 'ident'] if k in hints}
        for key, value in defaults.items():
            kwargs.setdefault(key, value)
        parent_scope, name = scope.rsplit('.', 1)
        return self.vcd.register_var(
            parent_scope, name, hints.get('var_type', 'integer'), **kwargs
        )

    def activate_probe(
        self, scope: str, inbox: simpy.Store, **hints: Any
    ) -> ProbeCallback:
        var = self._register(scope, hints, init=len(inbox.items))

        def probe_callback(depth: int) -> None:
            self.vcd.change(var, self.vcd_now(), depth)

        return probe_callback

    def activate_trace(self, scope: str, **hints: Any) -> TraceCallback:
        var = self._register(scope, hints)

        def trace_callback(*value: Any) -> None:
            self.vcd.change(var, self.vcd_now(), value if len(value) > 1 else value[0])

        return trace_callback

    def _dump_window(self, t_start: Time, t_stop: Time) -> Generator:
        # Variables are registered during elaboration; dumping can only be
        # switched once that is over.
        yield self.env.timeout(0)
        switches = sorted(
            ((t, on) for t, on in [(t_start, True), (t_stop, False)] if t is not None),
            key=lambda switch: (switch[0], not switch[1]),
        )
        if switches and switches[0][1]:
            self.vcd.dump_off(self.vcd_now())
        for t, on in switches:
            yield self.env.timeout(t - self.env.now)
            if on:
                self.vcd.dump_on(self.vcd_now())
            else:
                self.vcd.dump_off(self.vcd_now())


class TraceManager:
    """Fan trace calls and inbox probes out to the enabled tracers."""

    def __init__(self, env: 'SimEnvironment') -> None:
        self.tracers: List[Tracer] = []
        try:
            self.log_tracer = LogTracer(env)
            self.tracers.append(self.log_tracer)
            self.vcd_tracer = VCDTracer(env)
            self.tracers.append(self.vcd_tracer)
        except BaseException:
            self.close()
            raise

    def _enabled(self) -> List[Tracer]:
        return [tracer for tracer in self.tracers if tracer.enabled]

    def flush(self) -> None:
        for tracer in self._enabled():
            tracer.flush()

    def close(self) -> None:
        for tracer in self._enabled():
            tracer.close()
            if not tracer.persist:
                tracer.remove_files()

    def _hinted(self, scope: str, hints: Any) -> Generator:
        for tracer in self._enabled():
            if tracer.name in hints and tracer.is_scope_enabled(scope):
                yield tracer, hints[tracer.name]

    def auto_probe(self, scope: str, inbox: simpy.Store, **hints: Any) -> None:
        callbacks = [
            tracer.activate_probe(scope, inbox, **tracer_hints)
            for tracer, tracer_hints in self._hinted(scope, hints)
        ]
        callbacks = [callback for callback in callbacks if callback]
        if callbacks:
            probe_attach(scope, inbox, callbacks)

    def get_trace_function(self, scope: str, **hints: Any) -> Callable[..., None]:
        callbacks = [
            tracer.activate_trace(scope, **tracer_hints)
            for tracer, tracer_hints in self._hinted(scope, hints)
        ]
        callbacks = [callback for callback in callbacks if callback]

        def trace_function(*value: Any) -> None:
            for callback in callbacks:
                callback(*value)

        return trace_function

    def trace_exception(self) -> None:
        for tracer in self._enabled():
            tracer.trace_exception()
