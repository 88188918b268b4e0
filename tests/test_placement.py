import pytest

from fogmod.application import Application, Direction, EdgeKind
from fogmod.hierarchy import Device, DeviceHierarchy
from fogmod.placement import (
    Demand,
    EdgewardPlacement,
    ExplicitPlacement,
    IncompletePlacementError,
    InsufficientCapacityError,
    ModuleMapping,
    PlacementError,
    placement_demand,
)


def make_hierarchy(sensor_gateways=('gw1', 'gw2')):
    h = DeviceHierarchy()
    h.add_device(Device('cloud', 10000, 10000, 100, 10000))
    h.add_device(Device('gw1', 100, 1000, 1000, 1000, 10), 'cloud')
    h.add_device(Device('gw2', 100, 1000, 1000, 1000, 10), 'cloud')
    for i, gateway in enumerate(sensor_gateways):
        h.add_sensor(f'temp{i}', 'TEMP', gateway)
    return h


def make_app(filter_mips=60, agg_mips=60, app_id='temp'):
    app = Application(app_id)
    app.add_app_module('filter', filter_mips, ram=100)
    app.add_app_module('agg', agg_mips, ram=100)
    app.add_app_edge('TEMP', 'filter', 'TEMP', Direction.UP, EdgeKind.SENSOR, 10, 10)
    app.add_app_edge('filter', 'agg', 'FILTERED', Direction.UP, EdgeKind.MODULE,
                     10, 10)
    app.add_app_edge('agg', 'ALARM', 'ALARM', Direction.DOWN, EdgeKind.ACTUATOR,
                     10, 10)
    return app


def assert_within_capacity(app, hierarchy, table):
    for device, demand in placement_demand(app, table).items():
        assert demand.mips <= hierarchy[device].mips
        assert demand.ram <= hierarchy[device].ram


def test_edgeward_nearest_first():
    hierarchy = make_hierarchy()
    app = make_app(filter_mips=30, agg_mips=30)
    table = EdgewardPlacement().resolve(app, hierarchy)
    assert dict(table) == {'filter': 'gw1', 'agg': 'gw1'}
    assert table.modules_on('gw1') == ['filter', 'agg']
    assert table.app_id == 'temp'


def test_edgeward_tie_break_discovery_order():
    hierarchy = make_hierarchy(sensor_gateways=('gw2', 'gw1'))
    table = EdgewardPlacement().resolve(make_app(), hierarchy)
    assert table['filter'] == 'gw2'


def test_edgeward_deepest_feeder():
    hierarchy = make_hierarchy()
    hierarchy.add_device(Device('node', 100, 1000, 100, 100, 1), 'gw2')
    hierarchy.add_sensor('temp9', 'TEMP', 'node')
    table = EdgewardPlacement().resolve(make_app(filter_mips=30), hierarchy)
    assert table['filter'] == 'node'


def test_edgeward_climbs_when_full():
    hierarchy = make_hierarchy()
    app = make_app()
    table = EdgewardPlacement().resolve(app, hierarchy)
    assert dict(table) == {'filter': 'gw1', 'agg': 'cloud'}
    assert_within_capacity(app, hierarchy, table)


def test_edgeward_ram_limit():
    hierarchy = make_hierarchy()
    app = Application('fat')
    app.add_app_module('filter', 1, ram=2000)
    app.add_app_edge('TEMP', 'filter', 'TEMP', Direction.UP, EdgeKind.SENSOR, 1, 1)
    table = EdgewardPlacement().resolve(app, hierarchy)
    assert table['filter'] == 'cloud'


def test_edgeward_insufficient_capacity():
    hierarchy = make_hierarchy()
    with pytest.raises(InsufficientCapacityError):
        EdgewardPlacement().resolve(make_app(agg_mips=20000), hierarchy)
    assert issubclass(InsufficientCapacityError, PlacementError)


def test_edgeward_committed_demand_is_respected_and_not_modified():
    hierarchy = make_hierarchy()
    committed = {'gw1': Demand(50, 0)}
    table = EdgewardPlacement().resolve(make_app(), hierarchy, committed)
    assert table['filter'] == 'cloud'
    assert committed == {'gw1': Demand(50, 0)}
    assert len(hierarchy) == 3


def test_edgeward_is_deterministic():
    hierarchy = make_hierarchy()
    app = make_app()
    first = EdgewardPlacement().resolve(app, hierarchy)
    second = EdgewardPlacement().resolve(app, hierarchy)
    assert dict(first) == dict(second)


def test_edgeward_pinned():
    hierarchy = make_hierarchy()
    pinned = ModuleMapping()
    pinned.add_module_to_device('filter', 'gw2')
    app = make_app()
    table = EdgewardPlacement(pinned).resolve(app, hierarchy)
    assert dict(table) == {'filter': 'gw2', 'agg': 'cloud'}


def test_edgeward_pinned_counts_against_capacity():
    hierarchy = make_hierarchy()
    pinned = ModuleMapping()
    pinned.add_module_to_device('agg', 'gw1')
    table = EdgewardPlacement(pinned).resolve(make_app(), hierarchy)
    assert dict(table) == {'filter': 'cloud', 'agg': 'gw1'}


def test_edgeward_pinned_larger_than_device():
    pinned = ModuleMapping()
    pinned.add_module_to_device('filter', 'gw1')
    with pytest.raises(InsufficientCapacityError) as exc_info:
        EdgewardPlacement(pinned).resolve(make_app(filter_mips=500), make_hierarchy())
    assert 'gw1' in str(exc_info.value)


def test_edgeward_pinned_on_committed_device():
    pinned = ModuleMapping()
    pinned.add_module_to_device('filter', 'gw1')
    committed = {'gw1': Demand(90, 0)}
    with pytest.raises(InsufficientCapacityError):
        EdgewardPlacement(pinned).resolve(make_app(filter_mips=50), make_hierarchy(),
                                          committed)
    assert committed == {'gw1': Demand(90, 0)}


def test_edgeward_unreachable_module():
    hierarchy = make_hierarchy()
    app = make_app(filter_mips=10, agg_mips=10)
    app.add_app_module('report', 10)
    app.add_app_edge('report', 'ALARM', 'ALARM', Direction.DOWN,
                     EdgeKind.ACTUATOR, 1, 1)
    table = EdgewardPlacement().resolve(app, hierarchy)
    assert table['report'] == 'cloud'


def test_edgeward_sensor_bound_to_other_app():
    hierarchy = DeviceHierarchy()
    hierarchy.add_device(Device('cloud', 10000, 10000, 100, 10000))
    hierarchy.add_device(Device('gw1', 100, 1000, 1000, 1000, 10), 'cloud')
    hierarchy.add_sensor('temp0', 'TEMP', 'gw1', app_id='other')
    table = EdgewardPlacement().resolve(make_app(10, 10), hierarchy)
    assert table['filter'] == 'cloud'


def test_explicit_complete():
    hierarchy = make_hierarchy()
    mapping = ModuleMapping()
    mapping.add_module_to_device('filter', 'gw1')
    mapping.add_module_to_device('agg', 'cloud')
    mapping.add_module_to_device('agg', 'cloud')
    table = ExplicitPlacement(mapping).resolve(make_app(), hierarchy)
    assert dict(table) == {'filter': 'gw1', 'agg': 'cloud'}


def test_explicit_incomplete():
    hierarchy = make_hierarchy()
    mapping = ModuleMapping()
    mapping.add_module_to_device('filter', 'gw1')
    with pytest.raises(IncompletePlacementError) as exc_info:
        ExplicitPlacement(mapping).resolve(make_app(), hierarchy)
    assert 'agg' in str(exc_info.value)


@pytest.mark.parametrize('pairs', [
    [('filter', 'gw1'), ('agg', 'nowhere')],
    [('filter', 'gw1'), ('agg', 'cloud'), ('ghost', 'cloud')],
    [('filter', 'gw1'), ('agg', 'cloud'), ('filter', 'gw2')],
])
def test_explicit_invalid_mapping(pairs):
    mapping = ModuleMapping()
    for module, device in pairs:
        mapping.add_module_to_device(module, device)
    with pytest.raises(IncompletePlacementError):
        ExplicitPlacement(mapping).resolve(make_app(), make_hierarchy())


def test_cloud_only():
    hierarchy = make_hierarchy()
    app = make_app()
    table = ExplicitPlacement(ModuleMapping.cloud_only(app, hierarchy)).resolve(
        app, hierarchy
    )
    assert dict(table) == {'filter': 'cloud', 'agg': 'cloud'}


def test_placement_demand():
    hierarchy = make_hierarchy()
    app = make_app(filter_mips=30, agg_mips=40)
    table = EdgewardPlacement().resolve(app, hierarchy)
    assert placement_demand(app, table) == {'gw1': Demand(70, 200)}
