"""Simulation-time entities: devices, sensors and actuators.

These components give a fog model its behavior. A :class:`FogDevice` serves
the tuples delivered to the modules placed on it, a :class:`Sensor` emits
readings at its transmit interval, and an :class:`Actuator` consumes the
tuples addressed to its actuator type. All of them route traffic through the
:class:`~fogmod.router.TupleRouter` connected by their parent.

"""
from typing import Any, Generator, Optional

import simpy

from .component import Component
from .hierarchy import ActuatorEndpoint, Device, Interval, SensorEndpoint
from .router import AppTuple
from .simulation import ResultDict


class FogDevice(Component):
    """A compute device executing tuples one at a time, first-come first-served.

    Tuples wait in :attr:`inbox` while the device is busy. The inbox depth is
    available to the log and VCD tracers as ``<scope>.inbox`` and the busy
    state as ``<scope>.busy``.

    """

    base_name = 'device'

    def __init__(self, *args: Any, device: Device, **kwargs: Any) -> None:
        kwargs.setdefault('name', device.name)
        super().__init__(*args, **kwargs)
        self.device = device
        self.inbox = simpy.Store(self.env)
        #: Number of tuples executed.
        self.executed = 0
        #: Total simulated time spent executing tuples.
        self.busy_time = 0.0
        self.add_connections('router')
        self.add_process(self._serve)
        self.auto_probe('inbox', log={}, vcd={})
        self.trace_busy = self.get_trace_function(
            'busy', vcd={'var_type': 'integer', 'init': 0}
        )

    def _serve(self) -> Generator[simpy.Event, Any, None]:
        while True:
            tup = yield self.inbox.get()
            self.router.execution_started(self, tup)
            self.trace_busy(1)
            service_time = tup.cpu_length / self.device.mips
            yield self.env.timeout(service_time)
            self.trace_busy(0)
            self.busy_time += service_time
            self.executed += 1
            self.router.execution_finished(self, tup)

    def get_result_hook(self, result: ResultDict) -> None:
        result.setdefault('fog.device_busy_time', {})[self.name] = self.busy_time
        result.setdefault('fog.device_executed', {})[self.name] = self.executed


class Sensor(Component):
    """Boundary endpoint injecting tuples of its type at its gateway.

    With no interval on the endpoint, ``fog.sensor.interval`` from the
    configuration applies. With neither, the sensor only emits when
    :meth:`emit` is called.

    """

    base_name = 'sensor'

    def __init__(self, *args: Any, endpoint: SensorEndpoint, **kwargs: Any) -> None:
        kwargs.setdefault('name', endpoint.name)
        super().__init__(*args, **kwargs)
        self.endpoint = endpoint
        self.emitted = 0
        self.interval: Interval = endpoint.interval
        if self.interval is None:
            self.interval = self.env.config.setdefault('fog.sensor.interval', None)
        self.add_connections('router')
        if self.interval is not None:
            self.add_process(self._transmit_loop)

    def emit(self) -> None:
        self.emitted += 1
        self.router.emit(self.endpoint)

    def _next_interval(self) -> float:
        if callable(self.interval):
            return self.interval(self.env.rand)
        return self.interval

    def _transmit_loop(self) -> Generator[simpy.Event, Any, None]:
        while True:
            yield self.env.timeout(self._next_interval())
            self.emit()


class Actuator(Component):
    """Boundary endpoint consuming tuples addressed to its actuator type."""

    base_name = 'actuator'

    def __init__(
        self, *args: Any, endpoint: ActuatorEndpoint, **kwargs: Any
    ) -> None:
        kwargs.setdefault('name', endpoint.name)
        super().__init__(*args, **kwargs)
        self.endpoint = endpoint
        self.received = 0
        self.last_tuple: Optional[AppTuple] = None

    def actuate(self, tup: AppTuple) -> None:
        self.received += 1
        self.last_tuple = tup
        self.debug(f'{tup.tuple_type} from {tup.source}')
