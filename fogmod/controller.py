"""Top-level fog model component.

A fog model subclasses :class:`Controller`, builds its
:class:`~fogmod.hierarchy.DeviceHierarchy`, and submits one or more
applications with a placement policy::

    class Top(Controller):
        def __init__(self, *args, **kwargs):
            hierarchy = build_hierarchy(kwargs["env"].config)
            super().__init__(*args, hierarchy=hierarchy, **kwargs)
            app = build_application()
            self.submit_application(app, EdgewardPlacement())

    result = simulate(config, Top)
    result['fog.loop_delay']

"""
from typing import Any, Dict, Hashable, Set

from .application import Application, LoopError
from .component import Component
from .dot import generate_dot
from .entities import Actuator, FogDevice, Sensor
from .hierarchy import DeviceHierarchy
from .placement import (
    Demand,
    DemandMap,
    PlacementPolicy,
    PlacementTable,
    placement_demand,
)
from .router import TupleListener, TupleRouter
from .simulation import ResultDict
from .tracker import LatencyTracker


class Controller(Component):
    """Owns the devices, endpoints, router and latency tracker of one run.

    :param DeviceHierarchy hierarchy: The devices and endpoints to simulate.

    """

    base_name = 'fog'

    def __init__(self, *args: Any, hierarchy: DeviceHierarchy, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.hierarchy = hierarchy
        #: Per-run :class:`~fogmod.tracker.LatencyTracker`.
        self.tracker = LatencyTracker()
        self.router = TupleRouter(
            self.env, hierarchy, self.tracker, scope=f'{self.scope}.router'
        )
        self.devices = {d.name: FogDevice(self, device=d) for d in hierarchy}
        self.sensors = [Sensor(self, endpoint=s) for s in hierarchy.sensors]
        self.actuators = [Actuator(self, endpoint=a) for a in hierarchy.actuators]
        for device in self.devices.values():
            self.router.add_device(device)
        for actuator in self.actuators:
            self.router.add_actuator(actuator)

        self.applications: Dict[str, Application] = {}
        #: Resolved :class:`~fogmod.placement.PlacementTable` per app id.
        self.placements: Dict[str, PlacementTable] = {}
        self._committed: DemandMap = {}
        self._loop_ids: Set[Hashable] = set()
        self._elaborated = False

    def submit_application(
        self, application: Application, policy: PlacementPolicy
    ) -> PlacementTable:
        """Validate `application`, resolve its placement and register it.

        Placement is resolved against the capacity already committed to
        previously submitted applications. On failure nothing is committed
        and earlier applications are unaffected.

        :raises RuntimeError: When called after elaboration.
        :raises TopologyError: For an invalid application.
        :raises PlacementError: When placement cannot be resolved.

        """
        if self._elaborated:
            raise RuntimeError(
                f'cannot submit "{application.app_id}" after elaboration'
            )
        if application.app_id in self.applications:
            raise ValueError(f'application "{application.app_id}" already submitted')
        application.validate()
        loop_ids = {loop.loop_id for loop in application.loops}
        clashes = loop_ids & self._loop_ids
        if clashes:
            raise LoopError(
                f'{application.app_id}: loop ids {sorted(map(str, clashes))} '
                f'already used by another application'
            )

        table = policy.resolve(application, self.hierarchy, self._committed)

        for device, demand in placement_demand(application, table).items():
            self._committed[device] = self._committed.get(device, Demand()) + demand
        self._loop_ids |= loop_ids
        self.applications[application.app_id] = application
        self.placements[application.app_id] = table
        self.router.register(application, table)
        for module, device in table.items():
            self.info(f'{application.app_id}: placed {module} on {device}')
        return table

    def add_listener(self, app_id: str, module: str, listener: TupleListener) -> None:
        self.router.add_listener(app_id, module, listener)

    def connect_children(self) -> None:
        for device in self.devices.values():
            self.connect(device, 'router')
        for sensor in self.sensors:
            self.connect(sensor, 'router')

    def elab_hook(self) -> None:
        self._elaborated = True
        generate_dot(self)

    def get_result_hook(self, result: ResultDict) -> None:
        tracker = self.tracker
        result['fog.placement'] = {
            app_id: dict(table) for app_id, table in self.placements.items()
        }
        result['fog.loop_delay'] = tracker.loop_averages()
        result['fog.loop_closures'] = {
            loop_id: tracker.loop_closures(loop_id)
            for loop_id in tracker.loop_averages()
        }
        result['fog.tuple_cpu_time'] = tracker.tuple_type_averages()
        result['fog.emitted'] = tracker.emitted()
        result['fog.deadline_misses'] = tracker.deadline_misses()
        result['fog.network_usage'] = self.router.network_usage
        result['fog.network_usage_rate'] = (
            self.router.network_usage / self.env.now if self.env.now else 0.0
        )
        result['fog.unrouted'] = self.router.unrouted
