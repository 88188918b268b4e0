"""Tree of heterogeneous compute devices, from edge gateways up to the cloud.

Each :class:`Device` is added under an existing parent; the single device
without a parent is the root (conventionally the cloud, level 0). A device's
uplink latency and bandwidths describe the link to its parent. Sensors and
actuators attach to a gateway device through boundary endpoints.

Network delay between two devices follows the tree path through their
closest common ancestor, one :class:`Link` at a time::

    >>> h = DeviceHierarchy()
    >>> h.add_device(Device('cloud', 44800, 40000, 100, 10000))
    >>> h.add_device(Device('edge', 2800, 4000, 1000, 10000, 50), 'cloud')
    >>> h.transfer_delay('edge', 'cloud', 500)
    50.5

"""
from random import Random
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Union

Interval = Union[float, Callable[[Random], float], None]


class HierarchyError(Exception):
    """Base class for device hierarchy construction errors."""


class CycleError(HierarchyError):
    pass


class Device:
    """A compute node and the link to its parent.

    :param str name: Device identity, unique within the hierarchy.
    :param float mips: Processing rate in instructions per time unit.
    :param float ram: Memory capacity.
    :param float uplink_bandwidth: Bandwidth towards the parent.
    :param float downlink_bandwidth: Bandwidth from the parent.
    :param float uplink_latency: Latency of the link to the parent.

    """

    def __init__(
        self,
        name: str,
        mips: float,
        ram: float,
        uplink_bandwidth: float,
        downlink_bandwidth: float,
        uplink_latency: float = 0.0,
    ) -> None:
        if mips <= 0:
            raise ValueError(f'device "{name}" needs a positive mips, got {mips}')
        for label, bandwidth in [
            ('uplink_bandwidth', uplink_bandwidth),
            ('downlink_bandwidth', downlink_bandwidth),
        ]:
            if bandwidth <= 0:
                raise ValueError(
                    f'device "{name}" needs a positive {label}, got {bandwidth}'
                )
        self.name = name
        self.mips = mips
        self.ram = ram
        self.uplink_bandwidth = uplink_bandwidth
        self.downlink_bandwidth = downlink_bandwidth
        self.uplink_latency = uplink_latency

    def __repr__(self) -> str:
        return f'Device({self.name!r}, mips={self.mips}, ram={self.ram})'


class SensorEndpoint(NamedTuple):
    name: str
    tuple_type: str
    gateway: str
    latency: float = 0.0
    interval: Interval = None
    app_id: Optional[str] = None


class ActuatorEndpoint(NamedTuple):
    name: str
    actuator_type: str
    gateway: str
    latency: float = 0.0
    app_id: Optional[str] = None


class Link(NamedTuple):
    """One hop of a route; `upward` when travelling from child to parent."""

    child: Device
    parent: Device
    upward: bool

    @property
    def latency(self) -> float:
        return self.child.uplink_latency

    @property
    def bandwidth(self) -> float:
        if self.upward:
            return self.child.uplink_bandwidth
        return self.child.downlink_bandwidth

    def delay(self, network_length: float) -> float:
        if not network_length:
            return self.latency
        return network_length / self.bandwidth + self.latency


class DeviceHierarchy:
    """Device tree plus the sensors and actuators attached to it."""

    def __init__(self) -> None:
        self._devices: Dict[str, Device] = {}
        self._parents: Dict[str, Optional[str]] = {}
        self._children: Dict[str, List[str]] = {}
        self._levels: Dict[str, int] = {}
        self._root: Optional[str] = None
        self._sensors: List[SensorEndpoint] = []
        self._actuators: List[ActuatorEndpoint] = []

    def add_device(self, device: Device, parent: Optional[str] = None) -> None:
        """Add `device` below `parent`, or as the root when `parent` is None.

        :raises CycleError:
            If the device is already in the tree (re-adding it would close a
            cycle) or if `parent` has not been added yet.
        :raises HierarchyError: If a second root is added.

        """
        if device.name in self._devices:
            raise CycleError(f'device "{device.name}" is already in the hierarchy')
        if parent is None:
            if self._root is not None:
                raise HierarchyError(
                    f'hierarchy already has root "{self._root}"; '
                    f'cannot add "{device.name}" as a second root'
                )
            self._root = device.name
            level = 0
        else:
            if parent not in self._devices:
                raise CycleError(
                    f'parent "{parent}" of "{device.name}" does not exist'
                )
            level = self._levels[parent] + 1
            self._children[parent].append(device.name)
        self._devices[device.name] = device
        self._parents[device.name] = parent
        self._children[device.name] = []
        self._levels[device.name] = level

    def add_sensor(
        self,
        name: str,
        tuple_type: str,
        gateway: str,
        latency: float = 0.0,
        interval: Interval = None,
        app_id: Optional[str] = None,
    ) -> SensorEndpoint:
        self._check_gateway(name, gateway)
        sensor = SensorEndpoint(name, tuple_type, gateway, latency, interval, app_id)
        self._sensors.append(sensor)
        return sensor

    def add_actuator(
        self,
        name: str,
        actuator_type: str,
        gateway: str,
        latency: float = 0.0,
        app_id: Optional[str] = None,
    ) -> ActuatorEndpoint:
        self._check_gateway(name, gateway)
        actuator = ActuatorEndpoint(name, actuator_type, gateway, latency, app_id)
        self._actuators.append(actuator)
        return actuator

    def _check_gateway(self, endpoint: str, gateway: str) -> None:
        if gateway not in self._devices:
            raise HierarchyError(
                f'gateway "{gateway}" of endpoint "{endpoint}" does not exist'
            )

    def __getitem__(self, name: str) -> Device:
        return self._devices[name]

    def __contains__(self, name: object) -> bool:
        return name in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)

    @property
    def root(self) -> Device:
        if self._root is None:
            raise HierarchyError('hierarchy is empty')
        return self._devices[self._root]

    @property
    def leaves(self) -> List[Device]:
        return [self._devices[n] for n, kids in self._children.items() if not kids]

    @property
    def sensors(self) -> List[SensorEndpoint]:
        return list(self._sensors)

    @property
    def actuators(self) -> List[ActuatorEndpoint]:
        return list(self._actuators)

    def sensors_at(self, name: str) -> List[SensorEndpoint]:
        return [s for s in self._sensors if s.gateway == name]

    def actuators_at(self, name: str) -> List[ActuatorEndpoint]:
        return [a for a in self._actuators if a.gateway == name]

    def parent(self, name: str) -> Optional[Device]:
        parent = self._parents[name]
        return None if parent is None else self._devices[parent]

    def children(self, name: str) -> List[Device]:
        return [self._devices[n] for n in self._children[name]]

    def level(self, name: str) -> int:
        return self._levels[name]

    def uplink_latency(self, name: str) -> float:
        if self._parents[name] is None:
            return 0.0
        return self._devices[name].uplink_latency

    def path_to_root(self, name: str) -> List[Device]:
        path = [self._devices[name]]
        parent = self._parents[name]
        while parent is not None:
            path.append(self._devices[parent])
            parent = self._parents[parent]
        return path

    def common_ancestor(self, a: str, b: str) -> Device:
        ancestors = {d.name for d in self.path_to_root(a)}
        for device in self.path_to_root(b):
            if device.name in ancestors:
                return device
        raise HierarchyError(f'"{a}" and "{b}" share no ancestor')

    def route(self, src: str, dst: str) -> List[Link]:
        """Links traversed from `src` up to the common ancestor, then down."""
        ancestor = self.common_ancestor(src, dst).name
        links = []
        for child in self.path_to_root(src):
            if child.name == ancestor:
                break
            links.append(Link(child, self.parent(child.name), True))
        down = []
        for child in self.path_to_root(dst):
            if child.name == ancestor:
                break
            down.append(Link(child, self.parent(child.name), False))
        links.extend(reversed(down))
        return links

    def transfer_delay(self, src: str, dst: str, network_length: float) -> float:
        return sum(link.delay(network_length) for link in self.route(src, dst))
