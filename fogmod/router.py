"""Tuple routing between sensors, placed modules and actuators.

The :class:`TupleRouter` moves :class:`AppTuple` instances through the
placed topology. A tuple's life is::

    created -> in transit -> delivered -> executing -> completed

 - *Created* at a sensor (:meth:`TupleRouter.emit`) or from a module's
   selectivity rules when an upstream tuple completes.
 - *In transit* for the network delay of the route between the sending and
   receiving devices (see :meth:`~fogmod.hierarchy.DeviceHierarchy.route`),
   plus the endpoint latency for sensor and actuator hops.
 - *Delivered* into the FIFO inbox of the device hosting the destination
   module, where it waits while the device is busy.
 - *Executing* for ``cpu_length / mips`` on that device, then *completed*:
   selectivity rules produce the next tuples, which are routed the same way.

Each tuple carries its provenance, the `(node, timestamp)` hops of its
logical flow so far. A control loop closes when its path matches the tail of
that provenance at the loop's last node.

Tuples that cannot be routed are dropped and counted as
:class:`UnroutedTupleAnomaly`; they never abort the simulation.

"""
from collections import Counter
from itertools import count
from typing import (
    TYPE_CHECKING,
    Dict,
    Generator,
    List,
    NamedTuple,
    Optional,
    Tuple,
)

import simpy

from .application import AppEdge, Application, Direction, EdgeKind
from .hierarchy import DeviceHierarchy
from .placement import PlacementTable
from .tracker import LatencyTracker

if TYPE_CHECKING:
    from .entities import Actuator, FogDevice
    from .hierarchy import SensorEndpoint
    from .simulation import SimEnvironment


class UnroutedTupleAnomaly(Warning):
    """A tuple dropped because no route exists for it at `node`."""

    def __init__(self, tuple_type: str, node: str, reason: str) -> None:
        super().__init__(f'unrouted tuple {tuple_type} at {node}: {reason}')
        self.tuple_type = tuple_type
        self.node = node
        self.reason = reason


class Hop(NamedTuple):
    node: str
    timestamp: float


class AppTuple(NamedTuple):
    tuple_id: int
    app_id: str
    tuple_type: str
    source: str
    destination: str
    cpu_length: float
    network_length: float
    direction: Direction
    provenance: Tuple[Hop, ...]
    created: float
    origin: str
    deadline: Optional[float] = None


class TupleListener:
    """Observer of tuple arrival and completion at one module.

    Subclass and override either hook, then register the listener with
    :meth:`TupleRouter.add_listener`.

    """

    def on_arrival(self, module: str, tup: AppTuple, now: float) -> None:
        pass

    def on_completion(self, module: str, tup: AppTuple, now: float) -> None:
        pass


class TupleRouter:
    """Route tuples for all applications submitted to one simulation.

    :param env: Simulation environment.
    :param DeviceHierarchy hierarchy: Devices and attached endpoints.
    :param LatencyTracker tracker: Receives tuple lifecycle events.
    :param str scope: Log scope for routing messages.

    """

    def __init__(
        self,
        env: 'SimEnvironment',
        hierarchy: DeviceHierarchy,
        tracker: LatencyTracker,
        scope: str = 'router',
    ) -> None:
        self.env = env
        self.hierarchy = hierarchy
        self.tracker = tracker
        #: Payload bytes sent, counted once per link traversed.
        self.network_usage = 0.0
        #: Number of tuples dropped as unrouted.
        self.unrouted = 0
        #: Unrouted tuples by tuple type.
        self.unrouted_by_type: Counter = Counter()
        self._apps: Dict[str, Application] = {}
        self._placements: Dict[str, PlacementTable] = {}
        self._devices: Dict[str, 'FogDevice'] = {}
        self._actuators: List['Actuator'] = []
        self._listeners: Dict[Tuple[str, str], List[TupleListener]] = {}
        self._arrivals: Dict[int, float] = {}
        self._ids = count()
        self._warn = env.tracemgr.get_trace_function(scope, log={'level': 'WARNING'})
        self._debug = env.tracemgr.get_trace_function(scope, log={'level': 'DEBUG'})

    def add_device(self, device: 'FogDevice') -> None:
        self._devices[device.device.name] = device

    def add_actuator(self, actuator: 'Actuator') -> None:
        self._actuators.append(actuator)

    def register(self, application: Application, table: PlacementTable) -> None:
        self._apps[application.app_id] = application
        self._placements[application.app_id] = table

    def add_listener(self, app_id: str, module: str, listener: TupleListener) -> None:
        self._listeners.setdefault((app_id, module), []).append(listener)

    def emit(self, sensor: 'SensorEndpoint') -> None:
        """Create and send tuples for a sensor reading taken now."""
        now = self.env.now
        routed = False
        for app in self._bound_apps(sensor.app_id):
            for edge in app.edges_from(sensor.tuple_type):
                if edge.kind is not EdgeKind.SENSOR:
                    continue
                routed = True
                tup = self._new_tuple(
                    app, edge, (Hop(sensor.tuple_type, now),), sensor.gateway
                )
                dst = self._placements[app.app_id][edge.destination]
                delay = sensor.latency + self._transfer(
                    sensor.gateway, dst, edge.network_length
                )
                self.env.process(self._transmit(tup, self._devices[dst], delay))
        if not routed:
            self._anomaly(sensor.tuple_type, sensor.name, 'no edge from sensor')

    def execution_started(self, device: 'FogDevice', tup: AppTuple) -> None:
        self.tracker.on_execution_start(tup.tuple_id, self.env.now)

    def execution_finished(self, device: 'FogDevice', tup: AppTuple) -> None:
        """Account for a completed tuple and route what its module emits."""
        now = self.env.now
        self.tracker.on_execution_end(tup, now)
        if tup.deadline is not None and now - tup.created > tup.deadline:
            self.tracker.on_deadline_miss(tup, now)

        app = self._apps[tup.app_id]
        module = tup.destination
        arrived = self._arrivals.pop(tup.tuple_id, now)
        provenance = tup.provenance + (Hop(module, arrived),)
        for listener in self._listeners.get((tup.app_id, module), []):
            listener.on_completion(module, tup, now)
        closed = self._close_loops(app, provenance, now)

        rule = app.outputs_for(module, tup.tuple_type)
        if rule is None:
            if not closed:
                self._anomaly(tup.tuple_type, module, 'no selectivity rule')
            return
        for output_type, selectivity in rule.items():
            edges = app.edges_from(module, output_type)
            if not edges:
                self._anomaly(output_type, module, 'no outgoing edge')
                continue
            for _ in range(selectivity.emissions(self.env.rand)):
                for edge in edges:
                    out = self._new_tuple(app, edge, provenance, tup.origin)
                    self._route(app, out, edge, device.device.name)

    def _route(
        self, app: Application, tup: AppTuple, edge: AppEdge, src_device: str
    ) -> None:
        if edge.kind is EdgeKind.ACTUATOR:
            actuators = self._actuators_for(app, edge.destination, tup.origin)
            if not actuators:
                self._anomaly(tup.tuple_type, edge.destination, 'no actuator attached')
            for actuator in actuators:
                endpoint = actuator.endpoint
                delay = endpoint.latency + self._transfer(
                    src_device, endpoint.gateway, edge.network_length
                )
                self.env.process(self._actuate(tup, actuator, delay))
        else:
            dst = self._placements[app.app_id][edge.destination]
            delay = self._transfer(src_device, dst, edge.network_length)
            self.env.process(self._transmit(tup, self._devices[dst], delay))

    def _transmit(
        self, tup: AppTuple, device: 'FogDevice', delay: float
    ) -> Generator[simpy.Event, None, None]:
        yield self.env.timeout(delay)
        now = self.env.now
        self._arrivals[tup.tuple_id] = now
        for listener in self._listeners.get((tup.app_id, tup.destination), []):
            listener.on_arrival(tup.destination, tup, now)
        yield device.inbox.put(tup)

    def _actuate(
        self, tup: AppTuple, actuator: 'Actuator', delay: float
    ) -> Generator[simpy.Event, None, None]:
        yield self.env.timeout(delay)
        now = self.env.now
        actuator.actuate(tup)
        provenance = tup.provenance + (Hop(tup.destination, now),)
        self._close_loops(self._apps[tup.app_id], provenance, now)

    def _close_loops(
        self, app: Application, provenance: Tuple[Hop, ...], now: float
    ) -> bool:
        names = [hop.node for hop in provenance]
        closed = False
        for loop in app.loops:
            n = len(loop.path)
            if len(names) >= n and names[-n:] == loop.path:
                self.tracker.on_loop_closed(loop.loop_id, provenance[-n].timestamp, now)
                closed = True
        return closed

    def _new_tuple(
        self,
        app: Application,
        edge: AppEdge,
        provenance: Tuple[Hop, ...],
        origin: str,
    ) -> AppTuple:
        tup = AppTuple(
            tuple_id=next(self._ids),
            app_id=app.app_id,
            tuple_type=edge.tuple_type,
            source=edge.source,
            destination=edge.destination,
            cpu_length=edge.cpu_length,
            network_length=edge.network_length,
            direction=edge.direction,
            provenance=provenance,
            created=self.env.now,
            origin=origin,
            deadline=edge.deadline,
        )
        self.tracker.on_tuple_created(tup, self.env.now)
        return tup

    def _transfer(self, src: str, dst: str, network_length: float) -> float:
        links = self.hierarchy.route(src, dst)
        self.network_usage += network_length * len(links)
        return sum(link.delay(network_length) for link in links)

    def _bound_apps(self, app_id: Optional[str]) -> List[Application]:
        if app_id is None:
            return list(self._apps.values())
        app = self._apps.get(app_id)
        return [] if app is None else [app]

    def _actuators_for(
        self, app: Application, actuator_type: str, origin: str
    ) -> List['Actuator']:
        bound = [
            a
            for a in self._actuators
            if a.endpoint.actuator_type == actuator_type
            and a.endpoint.app_id in (None, app.app_id)
        ]
        local = [a for a in bound if a.endpoint.gateway == origin]
        return local or bound

    def _anomaly(self, tuple_type: str, node: str, reason: str) -> None:
        anomaly = UnroutedTupleAnomaly(tuple_type, node, reason)
        self.unrouted += 1
        self.unrouted_by_type[tuple_type] += 1
        self._warn(anomaly)
