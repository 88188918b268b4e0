"""Running fog simulations.

:func:`simulate` takes a fog model through its phases:

 - *Initialization*: the top-level component (normally a
   :class:`~fogmod.controller.Controller` subclass) builds its device
   hierarchy, submits applications and resolves their placement. Topology
   and capacity defects surface here, before any event is scheduled.
 - *Elaboration*: component connections are made and device, sensor and
   actuator processes are started.
 - *Simulation*: SimPy replays events in time order until ``sim.duration``.
 - *Post-simulation*: loop delays, tuple CPU times and network usage are
   gathered into the result dict.

:func:`simulate_factors` runs a sweep of related simulations, e.g. over the
number of sensor/actuator pairs, in separate processes.

"""
from contextlib import closing
from multiprocessing import Process, Queue, cpu_count
from pprint import pprint
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type, Union
import json
import os
import random
import shutil
import timeit

import simpy
import yaml

from .config import ConfigDict, ConfigFactor, factorial_config
from .timescale import parse_time, scale_time
from .tracer import TraceManager

if TYPE_CHECKING:
    from .component import Component

ResultDict = Dict[str, Any]


class SimEnvironment(simpy.Environment):
    """Simulation environment.

    A :class:`simpy.Environment` with access to the configuration dictionary,
    a seeded pseudo-random number generator, the simulation timescale and
    duration, and the trace manager shared by all components.

    :param dict config: The simulation configuration dictionary.

    """

    def __init__(self, config: ConfigDict) -> None:
        super().__init__()
        #: The configuration dictionary.
        self.config = config

        #: Seeded :class:`random.Random`; used for sensor inter-arrival
        #: sampling and fractional selectivity.
        self.rand = random.Random()
        self.rand.seed(config.setdefault('sim.seed', None))

        #: Simulation timescale ``(magnitude, units)`` tuple. The current
        #: simulation time is ``now * timescale``.
        self.timescale = parse_time(config.setdefault('sim.timescale', '1 ms'))

        duration: str = config.setdefault('sim.duration', '0 s')

        #: The intended simulation duration, in units of :attr:`timescale`.
        self.duration = scale_time(parse_time(duration), self.timescale)

        #: The simulation runs "until" this time. Events scheduled past it
        #: are never dispatched.
        self.until: Union[int, float, simpy.Event, None] = self.duration or None

        #: From 'meta.sim.index', the simulation's index when running multiple
        #: related simulations or `None` for a standalone simulation.
        self.sim_index: Optional[int] = config.get('meta.sim.index')

        #: :class:`~fogmod.tracer.TraceManager` instance.
        self.tracemgr = TraceManager(self)

    def time(self, t: Optional[float] = None, unit: str = 's') -> Union[int, float]:
        """The current simulation time scaled to `unit`."""
        target_scale = parse_time(unit)
        ts_mag, ts_unit = self.timescale
        sim_time = ((self.now if t is None else t) * ts_mag, ts_unit)
        return scale_time(sim_time, target_scale)


class _Workspace:
    """Context manager changing into the configured workspace directory."""

    def __init__(self, config: ConfigDict) -> None:
        self.workspace: str = config.setdefault(
            'meta.sim.workspace', config.setdefault('sim.workspace', os.curdir)
        )
        self.overwrite: bool = config.setdefault('sim.workspace.overwrite', False)
        self.prev_dir = os.getcwd()

    def __enter__(self) -> None:
        if os.path.relpath(self.workspace) != os.curdir:
            workspace_exists = os.path.isdir(self.workspace)
            if self.overwrite and workspace_exists:
                shutil.rmtree(self.workspace)
            if self.overwrite or not workspace_exists:
                os.makedirs(self.workspace)
            os.chdir(self.workspace)

    def __exit__(self, *exc: Any) -> None:
        os.chdir(self.prev_dir)


def simulate(
    config: ConfigDict,
    top_type: Type['Component'],
    env_type: Type[SimEnvironment] = SimEnvironment,
    reraise: bool = True,
) -> ResultDict:
    """Initialize, elaborate, and run a fog simulation.

    All exceptions are caught so they can be logged and captured in the
    result. By default they are then re-raised; with `reraise` False the
    returned result's 'sim.exception' item reports the failure instead.

    :param dict config: Configuration dictionary for the simulation.
    :param top_type: The model's top-level Component subclass.
    :param env_type: :class:`SimEnvironment` subclass.
    :param bool reraise: Should unhandled exceptions propagate to the caller.
    :returns: Dictionary of simulation results.

    """
    t0 = timeit.default_timer()
    result: ResultDict = {}
    result_file: Optional[str] = config.setdefault('sim.result.file', None)
    config_file: Optional[str] = config.setdefault('sim.config.file', None)
    try:
        with _Workspace(config):
            env = env_type(config)
            with closing(env.tracemgr):
                try:
                    top = top_type(parent=None, env=env)
                    top.elaborate()
                    env.tracemgr.flush()
                    env.run(until=env.until)
                    env.tracemgr.flush()
                    top.post_simulate()
                    top.get_result(result)
                except BaseException as e:
                    env.tracemgr.trace_exception()
                    result['sim.exception'] = repr(e)
                    raise
                else:
                    result['sim.exception'] = None
                finally:
                    env.tracemgr.flush()
                    result['config'] = config
                    result['sim.now'] = env.now
                    result['sim.time'] = env.time()
                    result['sim.runtime'] = timeit.default_timer() - t0
                    _dump_dict(config_file, config)
                    _dump_dict(result_file, result)
    except BaseException as e:
        if reraise:
            raise
        result.setdefault('config', config)
        result.setdefault('sim.runtime', timeit.default_timer() - t0)
        if result.get('sim.exception') is None:
            result['sim.exception'] = repr(e)
    return result


def simulate_factors(
    base_config: ConfigDict,
    factors: List[ConfigFactor],
    top_type: Type['Component'],
    env_type: Type[SimEnvironment] = SimEnvironment,
    jobs: Optional[int] = None,
    config_filter: Optional[Callable[[ConfigDict], bool]] = None,
) -> List[ResultDict]:
    """Run one simulation per combination of `factors`.

    Each simulation gets its own workspace, ``<sim.workspace>/<index>``.

    :param dict base_config: Base configuration dictionary to be specialized.
    :param list factors: List of `(keys, values_list)` factors.
    :param top_type: The model's top-level Component subclass.
    :param env_type: :class:`SimEnvironment` subclass.
    :param int jobs: Maximum number of concurrent worker processes.
    :param config_filter: Predicate selecting which configs to run.
    :returns: Result dicts, ordered by simulation index.

    """
    configs = list(factorial_config(base_config, factors, 'meta.sim.special'))
    ws: str = base_config.setdefault('sim.workspace', os.curdir)
    overwrite: bool = base_config.setdefault('sim.workspace.overwrite', False)

    for index, config in enumerate(configs):
        config['meta.sim.index'] = index
        config['meta.sim.workspace'] = os.path.join(ws, str(index))
    if config_filter is not None:
        configs[:] = filter(config_filter, configs)
    if overwrite and os.path.relpath(ws) != os.curdir and os.path.isdir(ws):
        shutil.rmtree(ws)
    return simulate_many(configs, top_type, env_type, jobs)


def simulate_many(
    configs: List[ConfigDict],
    top_type: Type['Component'],
    env_type: Type[SimEnvironment] = SimEnvironment,
    jobs: Optional[int] = None,
) -> List[ResultDict]:
    """Run several simulations, each in a separate worker process."""
    if jobs is not None and jobs < 1:
        raise ValueError(f'Invalid number of jobs: {jobs}')

    result_queue: 'Queue[ResultDict]' = Queue()
    config_queue: 'Queue[Optional[ConfigDict]]' = Queue()

    workspaces = set()
    for index, config in enumerate(configs):
        workspace = os.path.normpath(
            config.setdefault(
                'meta.sim.workspace', config.setdefault('sim.workspace', os.curdir)
            )
        )
        if workspace in workspaces:
            raise ValueError(f'Duplicate workspace: {workspace}')
        workspaces.add(workspace)
        config.setdefault('meta.sim.index', index)
        config_queue.put(config)

    num_workers = min(len(configs), cpu_count())
    if jobs is not None:
        num_workers = min(num_workers, jobs)

    workers = []
    for i in range(num_workers):
        worker = Process(
            name=f'sim-worker-{i}',
            target=_simulate_worker,
            args=(top_type, env_type, config_queue, result_queue),
        )
        worker.daemon = True
        worker.start()
        workers.append(worker)
        config_queue.put(None)  # One stop sentinel per worker.

    results = [result_queue.get() for _ in configs]

    for worker in workers:
        worker.join(5)

    return sorted(results, key=lambda r: r['config']['meta.sim.index'])


def _simulate_worker(
    top_type: Type['Component'],
    env_type: Type[SimEnvironment],
    config_queue: 'Queue[Optional[ConfigDict]]',
    result_queue: 'Queue[ResultDict]',
) -> None:
    while True:
        config = config_queue.get()
        if config is None:
            break
        result_queue.put(simulate(config, top_type, env_type, reraise=False))


def _dump_dict(filename: Optional[str], dump_dict: Dict[str, Any]) -> None:
    if filename is not None:
        _, ext = os.path.splitext(filename)
        if ext not in ['.yaml', '.yml', '.json', '.py']:
            raise ValueError(f'Invalid extension: {ext}')
        with open(filename, 'w') as dump_file:
            if ext in ['.yaml', '.yml']:
                yaml.safe_dump(dump_dict, stream=dump_file)
            elif ext == '.json':
                json.dump(dump_dict, dump_file, sort_keys=True, indent=2)
            else:
                assert ext == '.py'
                pprint(dump_dict, stream=dump_file)
