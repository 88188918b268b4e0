"""Application topology: modules, edges, selectivity and control loops.

An :class:`Application` is a directed dataflow graph. Its nodes are processing
modules (placed onto devices) and boundary nodes: sensor tuple types feeding
the graph and actuator types consuming from it. Each :class:`AppEdge` carries
one tuple type and the costs charged for it. Selectivity rules say which
tuple types a module emits for each type it consumes, and
:class:`AppLoop` names the end-to-end paths whose latency is tracked.

Applications are built once by the driver, validated, and are read-only
while the simulation runs::

    app = Application('HypotensionApp')
    app.add_app_module('clientModule', 10)
    app.add_app_module('hypotensionDetector', 50)
    app.add_app_edge('BP_SENSOR', 'clientModule', 'BP_SENSOR',
                     Direction.UP, EdgeKind.SENSOR, 1000, 500)
    ...
    app.add_tuple_mapping('clientModule', 'BP_SENSOR', 'RAW_BP_DATA',
                          FractionalSelectivity(1.0))
    app.set_loops([AppLoop(['BP_SENSOR', 'clientModule', 'DISPLAY'])])
    app.validate()

"""
from enum import Enum
from random import Random
from typing import (
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Set,
    Union,
)
import math


class TopologyError(Exception):
    """Base class for application topology errors."""


class DuplicateModuleError(TopologyError):
    pass


class DanglingEdgeError(TopologyError):
    pass


class LoopError(TopologyError):
    pass


class Direction(Enum):
    UP = 'up'
    DOWN = 'down'
    ACTUATOR = 'actuator'


class EdgeKind(Enum):
    MODULE = 'module'
    SENSOR = 'sensor'
    ACTUATOR = 'actuator'


class AppModule(NamedTuple):
    name: str
    mips: float
    ram: float = 0
    bw: float = 0
    size: float = 10000


class AppEdge(NamedTuple):
    """Directed edge carrying `tuple_type` from `source` to `destination`.

    `cpu_length` is charged to the destination module, `network_length` is
    the payload size used against link bandwidth. For SENSOR edges `source`
    is the sensor tuple type; for ACTUATOR edges `destination` is the
    actuator type.

    """

    source: str
    destination: str
    tuple_type: str
    direction: Direction
    kind: EdgeKind
    cpu_length: float
    network_length: float
    deadline: Optional[float] = None

    @property
    def source_is_module(self) -> bool:
        return self.kind is not EdgeKind.SENSOR

    @property
    def destination_is_module(self) -> bool:
        return self.kind is not EdgeKind.ACTUATOR


class FractionalSelectivity:
    """Emit `fraction` output tuples per input tuple, on average.

    The whole part of `fraction` is emitted deterministically; the
    fractional remainder is emitted with that probability. A fraction of
    1.0 is a deterministic 1-to-1 mapping and 0.5 drops every other tuple
    on average.

    """

    def __init__(self, fraction: float) -> None:
        if fraction < 0:
            raise ValueError(f'selectivity must not be negative, got {fraction}')
        self.fraction = fraction

    def emissions(self, rand: Random) -> int:
        whole = math.floor(self.fraction)
        remainder = self.fraction - whole
        if remainder and rand.random() < remainder:
            whole += 1
        return int(whole)

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.fraction})'


class SelectivityRule:
    """Output tuple types emitted by one module for one input tuple type."""

    def __init__(
        self,
        outputs: Optional[
            Mapping[str, Union[FractionalSelectivity, float]]
        ] = None,
    ) -> None:
        self._outputs: Dict[str, FractionalSelectivity] = {}
        for output_type, selectivity in (outputs or {}).items():
            self.add(output_type, selectivity)

    def add(
        self, output_type: str, selectivity: Union[FractionalSelectivity, float]
    ) -> None:
        if not isinstance(selectivity, FractionalSelectivity):
            selectivity = FractionalSelectivity(selectivity)
        self._outputs[output_type] = selectivity

    def items(self) -> Iterator:
        return iter(self._outputs.items())

    def __iter__(self) -> Iterator[str]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)


class AppLoop:
    """A named path of node names whose end-to-end delay is tracked."""

    def __init__(self, path: Iterable[str], loop_id: Optional[Hashable] = None):
        self.path = list(path)
        if len(self.path) < 2:
            raise LoopError(f'loop needs at least two nodes: {self.path}')
        self.loop_id = loop_id

    @property
    def start(self) -> str:
        return self.path[0]

    @property
    def end(self) -> str:
        return self.path[-1]

    def __repr__(self) -> str:
        return f'AppLoop({self.path!r}, loop_id={self.loop_id!r})'


class Application:
    """Dataflow graph of one fog application.

    :param str app_id: Application identity, unique within a simulation.

    """

    def __init__(self, app_id: str) -> None:
        self.app_id = app_id
        self._modules: Dict[str, AppModule] = {}
        self._edges: List[AppEdge] = []
        self._selectivity: Dict[str, Dict[str, SelectivityRule]] = {}
        self._loops: List[AppLoop] = []
        #: Set once :meth:`validate` succeeds; cleared by any later change.
        self.validated = False

    def add_app_module(
        self, name: str, mips: float, ram: float = 0, bw: float = 0, size: float = 10000
    ) -> AppModule:
        if name in self._modules:
            raise DuplicateModuleError(
                f'module "{name}" already added to application "{self.app_id}"'
            )
        module = AppModule(name, mips, ram, bw, size)
        self._modules[name] = module
        self.validated = False
        return module

    def add_app_edge(
        self,
        source: str,
        destination: str,
        tuple_type: str,
        direction: Direction,
        kind: EdgeKind,
        cpu_length: float,
        network_length: float,
        deadline: Optional[float] = None,
    ) -> AppEdge:
        edge = AppEdge(
            source,
            destination,
            tuple_type,
            direction,
            kind,
            cpu_length,
            network_length,
            deadline,
        )
        self._edges.append(edge)
        self.validated = False
        return edge

    def add_selectivity(
        self, module: str, input_type: str, rule: SelectivityRule
    ) -> None:
        existing = self._selectivity.setdefault(module, {}).get(input_type)
        if existing is None:
            self._selectivity[module][input_type] = rule
        else:
            for output_type, selectivity in rule.items():
                existing.add(output_type, selectivity)
        self.validated = False

    def add_tuple_mapping(
        self,
        module: str,
        input_type: str,
        output_type: str,
        selectivity: Union[FractionalSelectivity, float],
    ) -> None:
        self.add_selectivity(
            module, input_type, SelectivityRule({output_type: selectivity})
        )

    def set_loops(self, loops: Iterable[AppLoop]) -> None:
        self._loops = list(loops)
        for index, loop in enumerate(self._loops):
            if loop.loop_id is None:
                loop.loop_id = index
        self.validated = False

    @property
    def modules(self) -> List[AppModule]:
        return list(self._modules.values())

    @property
    def edges(self) -> List[AppEdge]:
        return list(self._edges)

    @property
    def loops(self) -> List[AppLoop]:
        return list(self._loops)

    def get_module(self, name: str) -> AppModule:
        return self._modules[name]

    def has_module(self, name: str) -> bool:
        return name in self._modules

    def edges_from(self, node: str, tuple_type: Optional[str] = None) -> List[AppEdge]:
        return [
            e
            for e in self._edges
            if e.source == node and (tuple_type is None or e.tuple_type == tuple_type)
        ]

    def edges_to(self, node: str) -> List[AppEdge]:
        return [e for e in self._edges if e.destination == node]

    def outputs_for(self, module: str, input_type: str) -> Optional[SelectivityRule]:
        """Selectivity rule of `module` for `input_type`, None for a sink."""
        return self._selectivity.get(module, {}).get(input_type)

    @property
    def sensor_types(self) -> List[str]:
        return _unique(e.source for e in self._edges if e.kind is EdgeKind.SENSOR)

    @property
    def actuator_types(self) -> List[str]:
        return _unique(
            e.destination for e in self._edges if e.kind is EdgeKind.ACTUATOR
        )

    @property
    def placed_modules(self) -> List[str]:
        """Names of all modules referenced by at least one edge."""
        names = []
        for edge in self._edges:
            if edge.source_is_module:
                names.append(edge.source)
            if edge.destination_is_module:
                names.append(edge.destination)
        return _unique(names)

    def validate(self) -> None:
        """Check the topology; must succeed before placement and routing.

        :raises DanglingEdgeError:
            For edges or selectivity rules referencing unknown modules, rules
            whose output type has no outgoing edge, or rules whose input type
            no edge delivers.
        :raises LoopError:
            For loops whose consecutive nodes are not joined by an edge.

        """
        if self.validated:
            return
        for edge in self._edges:
            for name, is_module in [
                (edge.source, edge.source_is_module),
                (edge.destination, edge.destination_is_module),
            ]:
                if is_module and name not in self._modules:
                    raise DanglingEdgeError(
                        f'edge {edge.source} -> {edge.destination} '
                        f'({edge.tuple_type}) references unknown module "{name}"'
                    )

        for module, rules in self._selectivity.items():
            if module not in self._modules:
                raise DanglingEdgeError(f'selectivity for unknown module "{module}"')
            delivered = {
                e.tuple_type for e in self.edges_to(module) if e.destination_is_module
            }
            emitted = {e.tuple_type for e in self.edges_from(module)}
            for input_type, rule in rules.items():
                if input_type not in delivered:
                    raise DanglingEdgeError(
                        f'no edge delivers "{input_type}" to module "{module}"'
                    )
                for output_type in rule:
                    if output_type not in emitted:
                        raise DanglingEdgeError(
                            f'module "{module}" emits "{output_type}" for '
                            f'"{input_type}" but has no edge for it'
                        )

        linked: Set[frozenset] = {
            frozenset((e.source, e.destination)) for e in self._edges
        }
        for loop in self._loops:
            for a, b in zip(loop.path, loop.path[1:]):
                if frozenset((a, b)) not in linked:
                    raise LoopError(f'loop {loop.loop_id}: no edge between {a} and {b}')
        self.validated = True


def _unique(names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(names))
