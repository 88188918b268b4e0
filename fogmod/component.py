"""Component is the building block for fog models.

A fog model is a tree of :class:`Component` instances rooted at a single
top-level component, normally a :class:`~fogmod.controller.Controller`
subclass. The controller parents one :class:`~fogmod.entities.FogDevice` per
physical device and one :class:`~fogmod.entities.Sensor` or
:class:`~fogmod.entities.Actuator` per boundary endpoint. The component tree
is flat; the physical device tree lives in
:class:`~fogmod.hierarchy.DeviceHierarchy`, not in component parentage.

A component declares the connections it expects from its parent with
:meth:`Component.add_connections`, e.g. the shared
:class:`~fogmod.router.TupleRouter`, and the simulation processes that give
it behavior with :meth:`Component.add_process`: a device serving its inbox,
a sensor emitting tuples at its transmit interval. Both are settled at
elaboration time, before the first event is dispatched.

"""
from typing import Any, Callable, Generator, List, Optional, Set

import simpy

from .simulation import ResultDict, SimEnvironment

ProcessGenerator = Callable[[], Generator[simpy.Event, Any, None]]


class ConnectError(Exception):
    pass


class Component:
    """Building block for composing fog models.

    :param Component parent: Parent component or None for the top component.
    :param SimEnvironment env: Simulation environment, inherited from
        `parent` when omitted.
    :param str name: Optional instance name; `base_name` when omitted.

    """

    #: Name used in the scope when none is given (class attribute).
    base_name: str = ''

    def __init__(
        self,
        parent: Optional['Component'],
        env: Optional[SimEnvironment] = None,
        name: Optional[str] = None,
    ) -> None:
        if env is None:
            if parent is None:
                raise AssertionError('either parent or env must be non-None')
            env = parent.env
        #: The simulation environment; a :class:`SimEnvironment` instance.
        self.env: SimEnvironment = env
        self.name = self.base_name if name is None else name
        #: Dotted path of the component from the top of the model.
        self.scope = (
            f'{parent.scope}.{self.name}' if parent and parent.scope else self.name
        )
        if parent:
            parent._children.append(self)
        self._children: List['Component'] = []
        self._processes: List[ProcessGenerator] = []
        self._not_connected: Set[str] = set()

        tracemgr = self.env.tracemgr
        #: Log a warning message.
        self.warn = tracemgr.get_trace_function(self.scope, log={'level': 'WARNING'})
        #: Log an informative message.
        self.info = tracemgr.get_trace_function(self.scope, log={'level': 'INFO'})
        #: Log a debug message.
        self.debug = tracemgr.get_trace_function(self.scope, log={'level': 'DEBUG'})

    def add_process(self, g: ProcessGenerator) -> None:
        """Declare a process method to be started at elaboration time."""
        self._processes.append(g)

    def add_connections(self, *connection_names: str) -> None:
        """Declare names of objects the parent must connect at elaboration."""
        self._not_connected.update(connection_names)

    def connect(self, dst: 'Component', connection: str) -> None:
        """Hand this component's `connection` attribute to child `dst`."""
        if not hasattr(self, connection):
            raise ConnectError(
                f'"{self.scope}" (class {type(self).__name__}) does not have '
                f'attr "{connection}"'
            )
        if connection not in dst._not_connected:
            raise ConnectError(
                f'"{dst.scope}" (class {type(dst).__name__}) does not declare '
                f'connection "{connection}"'
            )
        setattr(dst, connection, getattr(self, connection))
        dst._not_connected.remove(connection)

    def connect_children(self) -> None:
        """Make connections for child components.

        Subclasses with children that declare connections must override this
        and call :meth:`connect` for each of them.

        """

    def auto_probe(self, name: str, **hints: Any) -> None:
        """Trace the depth of the store held in attribute `name`."""
        self.env.tracemgr.auto_probe(
            f'{self.scope}.{name}', getattr(self, name), **hints
        )

    def get_trace_function(self, name: str, **hints: Any) -> Callable[..., None]:
        return self.env.tracemgr.get_trace_function(f'{self.scope}.{name}', **hints)

    def elaborate(self) -> None:
        """Recursively make connections and start processes."""
        self.connect_children()
        for child in self._children:
            if child._not_connected:
                raise ConnectError(
                    f'{child.scope}.{sorted(child._not_connected)[0]} not connected'
                )
            child.elaborate()
        for proc in self._processes:
            self.env.process(proc())
        self.elab_hook()

    def elab_hook(self) -> None:
        """Hook called after elaboration and before the simulation phase."""

    def post_simulate(self) -> None:
        """Recursively run post-simulation hooks."""
        for child in self._children:
            child.post_simulate()
        self.post_sim_hook()

    def post_sim_hook(self) -> None:
        """Hook called after the simulation completes successfully."""

    def get_result(self, result: ResultDict) -> None:
        """Recursively compose the simulation result dict."""
        for child in self._children:
            child.get_result(result)
        self.get_result_hook(result)

    def get_result_hook(self, result: ResultDict) -> None:
        """Hook called after result is composed by descendant components."""
