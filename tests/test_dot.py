import os

import pytest

from fogmod.application import AppLoop, Application, Direction, EdgeKind
from fogmod.controller import Controller
from fogmod.dot import application_to_dot, generate_dot, hierarchy_to_dot
from fogmod.hierarchy import Device, DeviceHierarchy
from fogmod.placement import EdgewardPlacement
from fogmod.simulation import SimEnvironment

pytestmark = pytest.mark.usefixtures('cleandir')


@pytest.fixture
def hierarchy():
    h = DeviceHierarchy()
    h.add_device(Device('cloud', 10000, 40000, 100, 10000))
    h.add_device(Device('gw', 1000, 4000, 1000, 10000, 50), 'cloud')
    h.add_sensor('bp0', 'BP', 'gw')
    h.add_actuator('display0', 'DISPLAY', 'gw')
    return h


@pytest.fixture
def app():
    app = Application('bp')
    app.add_app_module('client', 10)
    app.add_app_module('detector', 50)
    app.add_app_edge('BP', 'client', 'BP', Direction.UP, EdgeKind.SENSOR, 1, 1)
    app.add_app_edge('client', 'detector', 'RAW', Direction.UP, EdgeKind.MODULE,
                     1, 1)
    app.add_app_edge('detector', 'client', 'PROCESSED', Direction.DOWN,
                     EdgeKind.MODULE, 1, 1)
    app.add_app_edge('client', 'DISPLAY', 'UPDATE', Direction.DOWN,
                     EdgeKind.ACTUATOR, 1, 1)
    app.add_tuple_mapping('client', 'BP', 'RAW', 1.0)
    app.add_tuple_mapping('detector', 'RAW', 'PROCESSED', 1.0)
    app.add_tuple_mapping('client', 'PROCESSED', 'UPDATE', 1.0)
    app.set_loops([AppLoop(['BP', 'client', 'detector'])])
    return app


def make_top(config, hierarchy, app):
    top = Controller(None, env=SimEnvironment(config), hierarchy=hierarchy)
    top.submit_application(app, EdgewardPlacement())
    return top


def test_application_to_dot(app):
    dot = application_to_dot(app)
    assert dot.startswith('digraph "bp" {')
    assert '"BP" [shape=invhouse];' in dot
    assert '"DISPLAY" [shape=house];' in dot
    assert '<b>detector</b><br/>50 mips' in dot
    raw = next(line for line in dot.splitlines() if '"client" -> "detector"' in line)
    assert 'style=bold' in raw
    update = next(line for line in dot.splitlines() if '-> "DISPLAY"' in line)
    assert 'style=bold' not in update
    processed = next(
        line for line in dot.splitlines() if '"detector" -> "client"' in line
    )
    assert 'constraint=false' in processed
    assert dot.endswith('}')


def test_hierarchy_to_dot(hierarchy):
    dot = hierarchy_to_dot(hierarchy, {'gw': ['bp.client']})
    assert '"cloud" -> "gw" [label="50"];' in dot
    assert '<i>bp.client</i>' in dot
    assert 'level 1, 1000 mips' in dot
    assert '"gw" -> "bp0" [style=dashed];' in dot
    assert '"display0" [shape=house];' in dot


def test_generate_dot_disabled(hierarchy, app):
    top = make_top({}, hierarchy, app)
    top.elaborate()
    assert os.listdir(os.curdir) == []


def test_generate_dot(hierarchy, app):
    config = {'sim.dot.enable': True}
    top = make_top(config, hierarchy, app)
    generate_dot(top)
    assert os.path.exists('app_bp.dot')
    with open('hier.dot') as f:
        dot = f.read()
    assert '<i>bp.client</i>' in dot
    assert '<i>bp.detector</i>' in dot


def test_generate_dot_skip_hierarchy(hierarchy, app):
    config = {
        'sim.dot.enable': True,
        'sim.dot.app.file': 'graph-{app_id}.dot',
        'sim.dot.hier.file': '',
    }
    top = make_top(config, hierarchy, app)
    top.elaborate()
    assert os.listdir(os.curdir) == ['graph-bp.dot']
