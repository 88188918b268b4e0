import pytest

from fogmod.application import (
    AppLoop,
    Application,
    DanglingEdgeError,
    Direction,
    EdgeKind,
    LoopError,
)
from fogmod.controller import Controller
from fogmod.hierarchy import Device, DeviceHierarchy
from fogmod.placement import EdgewardPlacement, InsufficientCapacityError


@pytest.fixture
def hierarchy():
    h = DeviceHierarchy()
    h.add_device(Device('cloud', 10000, 40000, 100, 10000))
    h.add_device(Device('gw', 100, 4000, 1000, 10000, 50), 'cloud')
    h.add_sensor('temp0', 'TEMP', 'gw')
    return h


@pytest.fixture
def top(env, hierarchy):
    return Controller(None, env=env, hierarchy=hierarchy)


def make_app(app_id, mips=60, loop_id=None):
    app = Application(app_id)
    app.add_app_module('proc', mips)
    app.add_app_edge('TEMP', 'proc', 'TEMP', Direction.UP, EdgeKind.SENSOR, 100, 0)
    app.set_loops([AppLoop(['TEMP', 'proc'], loop_id)])
    return app


def test_capacity_shared_between_applications(top):
    first = top.submit_application(make_app('a', loop_id='a'), EdgewardPlacement())
    second = top.submit_application(make_app('b', loop_id='b'), EdgewardPlacement())
    assert first['proc'] == 'gw'
    assert second['proc'] == 'cloud'
    assert set(top.placements) == {'a', 'b'}


def test_failed_submission_commits_nothing(top):
    top.submit_application(make_app('a', loop_id='a'), EdgewardPlacement())
    with pytest.raises(InsufficientCapacityError):
        top.submit_application(
            make_app('huge', mips=1e6, loop_id='huge'), EdgewardPlacement()
        )
    assert 'huge' not in top.applications
    table = top.submit_application(
        make_app('small', mips=40, loop_id='small'), EdgewardPlacement()
    )
    assert table['proc'] == 'gw'


def test_invalid_application_rejected(top):
    app = make_app('bad')
    app.add_app_edge('proc', 'ghost', 'X', Direction.UP, EdgeKind.MODULE, 1, 1)
    with pytest.raises(DanglingEdgeError):
        top.submit_application(app, EdgewardPlacement())
    assert top.applications == {}


def test_duplicate_application(top):
    top.submit_application(make_app('a', loop_id='a'), EdgewardPlacement())
    with pytest.raises(ValueError):
        top.submit_application(make_app('a', loop_id='z'), EdgewardPlacement())


def test_loop_id_clash(top):
    top.submit_application(make_app('a'), EdgewardPlacement())
    with pytest.raises(LoopError):
        top.submit_application(make_app('b'), EdgewardPlacement())


def test_submit_after_elaboration(top):
    top.elaborate()
    with pytest.raises(RuntimeError):
        top.submit_application(make_app('late'), EdgewardPlacement())


def test_both_applications_receive_sensor_tuples(env, top):
    top.submit_application(make_app('a', loop_id='a'), EdgewardPlacement())
    top.submit_application(make_app('b', loop_id='b'), EdgewardPlacement())
    top.elaborate()
    top.sensors[0].emit()
    env.run(until=100)
    assert top.tracker.loop_closures('a') == 1
    assert top.tracker.loop_closures('b') == 1
    assert top.tracker.loop_average('a') == pytest.approx(1.0)
    assert top.tracker.loop_average('b') == pytest.approx(50.01)


def test_result(env, top):
    top.submit_application(make_app('a', loop_id='a'), EdgewardPlacement())
    top.elaborate()
    top.sensors[0].emit()
    env.run(until=10)
    result = {}
    top.get_result(result)
    assert result['fog.placement'] == {'a': {'proc': 'gw'}}
    assert result['fog.loop_delay'] == {'a': pytest.approx(1.0)}
    assert result['fog.loop_closures'] == {'a': 1}
    assert result['fog.tuple_cpu_time'] == {'TEMP': pytest.approx(1.0)}
    assert result['fog.emitted'] == {'TEMP': 1}
    assert result['fog.deadline_misses'] == {}
    assert result['fog.network_usage'] == 0
    assert result['fog.network_usage_rate'] == 0
    assert result['fog.unrouted'] == 0
    assert result['fog.device_executed'] == {'cloud': 0, 'gw': 1}
    assert result['fog.device_busy_time']['gw'] == pytest.approx(1.0)
