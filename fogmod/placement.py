"""Module placement: assigning application modules to devices.

Placement is resolved once per application, before the simulation starts,
by a :class:`PlacementPolicy`:

 - :class:`ExplicitPlacement` takes a complete :class:`ModuleMapping` from
   the driver, e.g. "everything on the cloud" or "everything on the edge
   gateway", and only checks it.
 - :class:`EdgewardPlacement` pushes each module as close to its data
   source as capacity allows, climbing towards the cloud only when the
   devices below are full.

Resolution is pure: neither the application nor the hierarchy is modified.
Capacity already committed to other applications on the same hierarchy is
passed in explicitly as a `committed` demand map.

"""
from collections import deque
from collections.abc import Mapping
from typing import Dict, Iterator, List, NamedTuple, Optional, Set

from .application import AppModule, Application, EdgeKind
from .hierarchy import Device, DeviceHierarchy


class PlacementError(Exception):
    """Base class for placement resolution errors."""


class IncompletePlacementError(PlacementError):
    pass


class InsufficientCapacityError(PlacementError):
    pass


class Demand(NamedTuple):
    mips: float = 0
    ram: float = 0

    def __add__(self, other):
        return Demand(self.mips + other.mips, self.ram + other.ram)


DemandMap = Dict[str, Demand]


class PlacementTable(Mapping):
    """Read-only map of module name to device name for one application."""

    def __init__(self, app_id: str, assignments: Dict[str, str]) -> None:
        self.app_id = app_id
        self._assignments = dict(assignments)

    def __getitem__(self, module: str) -> str:
        return self._assignments[module]

    def __iter__(self) -> Iterator[str]:
        return iter(self._assignments)

    def __len__(self) -> int:
        return len(self._assignments)

    def modules_on(self, device: str) -> List[str]:
        return [m for m, d in self._assignments.items() if d == device]

    def __repr__(self) -> str:
        return f'PlacementTable({self.app_id!r}, {self._assignments!r})'


class ModuleMapping:
    """Driver-supplied mapping of device names to module names."""

    def __init__(self) -> None:
        self._mapping: Dict[str, List[str]] = {}

    def add_module_to_device(self, module: str, device: str) -> None:
        modules = self._mapping.setdefault(device, [])
        if module not in modules:
            modules.append(module)

    def items(self) -> Iterator:
        return iter(self._mapping.items())

    @classmethod
    def cloud_only(
        cls, application: Application, hierarchy: DeviceHierarchy
    ) -> 'ModuleMapping':
        mapping = cls()
        for module in application.placed_modules:
            mapping.add_module_to_device(module, hierarchy.root.name)
        return mapping


def placement_demand(application: Application, table: PlacementTable) -> DemandMap:
    """Total module demand per device for a resolved placement."""
    demand: DemandMap = {}
    for module, device in table.items():
        _reserve(demand, device, application.get_module(module))
    return demand


class PlacementPolicy:
    """Resolve an application's modules onto a device hierarchy."""

    def resolve(
        self,
        application: Application,
        hierarchy: DeviceHierarchy,
        committed: Optional[DemandMap] = None,
    ) -> PlacementTable:
        raise NotImplementedError()  # pragma: no cover


class ExplicitPlacement(PlacementPolicy):
    """Use a driver-provided mapping as-is after checking it is complete."""

    def __init__(self, mapping: ModuleMapping) -> None:
        self.mapping = mapping

    def resolve(
        self,
        application: Application,
        hierarchy: DeviceHierarchy,
        committed: Optional[DemandMap] = None,
    ) -> PlacementTable:
        assignments = _mapped_assignments(application, hierarchy, self.mapping)
        missing = [m for m in application.placed_modules if m not in assignments]
        if missing:
            raise IncompletePlacementError(
                f'{application.app_id}: no device for modules {", ".join(missing)}'
            )
        return PlacementTable(application.app_id, assignments)


class EdgewardPlacement(PlacementPolicy):
    """Place modules as near as capacity allows to the sensors feeding them.

    Modules are visited breadth-first along the application's edges,
    starting from its sensor types. A module starts at the deepest device
    feeding it: the gateway of an attached sensor for sensor edges, or the
    device of an already placed upstream module. Equally deep feeders are
    resolved in discovery order, so the gateway of the endpoint that first
    triggered the module wins. From there the resolver climbs towards the
    root and takes the first device whose remaining mips and ram cover the
    module.

    :param ModuleMapping pinned:
        Optional mapping of modules whose device is fixed by the driver; their
        demand still counts against device capacity.

    """

    def __init__(self, pinned: Optional[ModuleMapping] = None) -> None:
        self.pinned = pinned

    def resolve(
        self,
        application: Application,
        hierarchy: DeviceHierarchy,
        committed: Optional[DemandMap] = None,
    ) -> PlacementTable:
        assignments: Dict[str, str] = {}
        if self.pinned is not None:
            assignments.update(
                _mapped_assignments(application, hierarchy, self.pinned)
            )
        used: DemandMap = dict(committed or {})
        for module, device in assignments.items():
            needs = application.get_module(module)
            if not _fits(hierarchy[device], used, needs):
                raise InsufficientCapacityError(
                    f'{application.app_id}: pinned module "{module}" '
                    f'(mips={needs.mips}, ram={needs.ram}) does not fit on '
                    f'"{device}"'
                )
            _reserve(used, device, needs)

        for module in self._visit_order(application):
            if module in assignments:
                continue
            start = self._start_device(application, hierarchy, module, assignments)
            device = self._climb(application, hierarchy, module, start, used)
            assignments[module] = device
            _reserve(used, device, application.get_module(module))

        for module in application.placed_modules:
            if module not in assignments:
                # Not reachable from any sensor; the cloud takes it.
                device = self._climb(
                    application, hierarchy, module, hierarchy.root.name, used
                )
                assignments[module] = device
                _reserve(used, device, application.get_module(module))
        return PlacementTable(application.app_id, assignments)

    def _visit_order(self, application: Application) -> List[str]:
        order: List[str] = []
        seen: Set[str] = set()
        pending = deque(application.sensor_types)
        while pending:
            node = pending.popleft()
            for edge in application.edges_from(node):
                if edge.destination_is_module and edge.destination not in seen:
                    seen.add(edge.destination)
                    order.append(edge.destination)
                    pending.append(edge.destination)
        return order

    def _start_device(
        self,
        application: Application,
        hierarchy: DeviceHierarchy,
        module: str,
        assignments: Dict[str, str],
    ) -> str:
        feeders: List[str] = []
        for edge in application.edges_to(module):
            if edge.kind is EdgeKind.SENSOR:
                feeders.extend(
                    s.gateway
                    for s in hierarchy.sensors
                    if s.tuple_type == edge.source
                    and s.app_id in (None, application.app_id)
                )
            elif edge.source in assignments:
                feeders.append(assignments[edge.source])
        if not feeders:
            return hierarchy.root.name
        # max() keeps the first of equally deep feeders.
        return max(feeders, key=hierarchy.level)

    def _climb(
        self,
        application: Application,
        hierarchy: DeviceHierarchy,
        module: str,
        start: str,
        used: DemandMap,
    ) -> str:
        needs = application.get_module(module)
        for device in hierarchy.path_to_root(start):
            if _fits(device, used, needs):
                return device.name
        raise InsufficientCapacityError(
            f'{application.app_id}: no device between "{start}" and the root '
            f'can host module "{module}" (mips={needs.mips}, ram={needs.ram})'
        )


def _mapped_assignments(
    application: Application, hierarchy: DeviceHierarchy, mapping: ModuleMapping
) -> Dict[str, str]:
    assignments: Dict[str, str] = {}
    for device, modules in mapping.items():
        if device not in hierarchy:
            raise IncompletePlacementError(
                f'{application.app_id}: mapping names unknown device "{device}"'
            )
        for module in modules:
            if not application.has_module(module):
                raise IncompletePlacementError(
                    f'{application.app_id}: mapping names unknown module "{module}"'
                )
            if module in assignments:
                raise IncompletePlacementError(
                    f'{application.app_id}: module "{module}" mapped to both '
                    f'"{assignments[module]}" and "{device}"'
                )
            assignments[module] = device
    return assignments


def _reserve(used: DemandMap, device: str, needs: AppModule) -> None:
    used[device] = used.get(device, Demand()) + Demand(needs.mips, needs.ram)


def _fits(device: Device, used: DemandMap, needs: AppModule) -> bool:
    taken = used.get(device.name, Demand())
    return (
        taken.mips + needs.mips <= device.mips
        and taken.ram + needs.ram <= device.ram
    )
