"""Model blood-pressure monitoring with hypotension detection.

Eight blood-pressure sensor nodes hang off two edge gateways below a cloud
data center. Each sensor node carries a BP sensor and a display. Readings
flow through a client module to a hypotension detector and back to the
display; the sensor-to-display loop delay is the figure of merit.

The model is run twice: once with both modules in the cloud and once with
edge-ward placement, which keeps them on the devices nearest the
sensors while capacity allows.

This example demonstrates:
 - Building a device hierarchy and an application topology
 - Comparing explicit (cloud-only) and edge-ward placement
 - Reading loop delays and tuple CPU times from the result dict

"""
from fogmod.application import (
    AppLoop,
    Application,
    Direction,
    EdgeKind,
    FractionalSelectivity,
)
from fogmod.controller import Controller
from fogmod.hierarchy import Device, DeviceHierarchy
from fogmod.placement import EdgewardPlacement, ExplicitPlacement, ModuleMapping
from fogmod.simulation import simulate


def build_hierarchy(config):
    num_sensors = config.setdefault('hypotension.sensors', 8)
    cloud_mode = config.setdefault('hypotension.cloud', False)
    interval = config.setdefault('hypotension.sensor.interval', 5.0)
    endpoint_latency = 50.0 if cloud_mode else 1.0

    hierarchy = DeviceHierarchy()
    hierarchy.add_device(Device('cloud', 44800, 40000, 100, 10000))
    for g in (1, 2):
        hierarchy.add_device(
            Device(f'edge-gateway-{g}', 2800, 4000, 10000, 10000, 50), 'cloud'
        )
    for i in range(num_sensors):
        node = f'bp-sensor-{i}'
        gateway = 'edge-gateway-1' if i < num_sensors // 2 else 'edge-gateway-2'
        hierarchy.add_device(Device(node, 1000, 512, 1000, 1000, 2), gateway)
        hierarchy.add_sensor(
            f'bp-sensor_{i}', 'BP_SENSOR', node, endpoint_latency, interval
        )
        hierarchy.add_actuator(f'display-sensor_{i}', 'DISPLAY', node, endpoint_latency)
    return hierarchy


def build_application():
    app = Application('HypotensionApp')
    app.add_app_module('clientModule', 10)
    app.add_app_module('hypotensionDetector', 50)

    app.add_app_edge('BP_SENSOR', 'clientModule', 'BP_SENSOR',
                     Direction.UP, EdgeKind.SENSOR, 1000, 500)
    app.add_app_edge('clientModule', 'hypotensionDetector', 'RAW_BP_DATA',
                     Direction.UP, EdgeKind.MODULE, 2000, 500)
    app.add_app_edge('hypotensionDetector', 'clientModule', 'PROCESSED_DATA',
                     Direction.DOWN, EdgeKind.MODULE, 500, 28)
    app.add_app_edge('clientModule', 'DISPLAY', 'DISPLAY_UPDATE',
                     Direction.DOWN, EdgeKind.ACTUATOR, 500, 500)

    app.add_tuple_mapping('clientModule', 'BP_SENSOR', 'RAW_BP_DATA',
                          FractionalSelectivity(1.0))
    app.add_tuple_mapping('hypotensionDetector', 'RAW_BP_DATA', 'PROCESSED_DATA',
                          FractionalSelectivity(1.0))
    app.add_tuple_mapping('clientModule', 'PROCESSED_DATA', 'DISPLAY_UPDATE',
                          FractionalSelectivity(1.0))

    app.set_loops([
        AppLoop(['BP_SENSOR', 'clientModule', 'hypotensionDetector',
                 'clientModule', 'DISPLAY'], loop_id='bp-display'),
    ])
    return app


class Top(Controller):
    """Hypotension detection on a cloud/gateway/sensor-node hierarchy."""

    def __init__(self, *args, **kwargs):
        hierarchy = build_hierarchy(kwargs['env'].config)
        super().__init__(*args, hierarchy=hierarchy, **kwargs)
        app = build_application()
        if self.env.config['hypotension.cloud']:
            policy = ExplicitPlacement(ModuleMapping.cloud_only(app, hierarchy))
        else:
            policy = EdgewardPlacement()
        self.submit_application(app, policy)


config = {
    'hypotension.cloud': False,
    'hypotension.sensors': 8,
    'hypotension.sensor.interval': 5.0,
    'sim.duration': '10000 ms',
    'sim.log.enable': True,
    'sim.log.file': 'sim.log',
    'sim.log.level': 'INFO',
    'sim.result.file': 'results.yaml',
    'sim.seed': 42,
    'sim.timescale': 'ms',
    'sim.workspace': 'workspace',
}

if __name__ == '__main__':
    for cloud_mode in (True, False):
        config['hypotension.cloud'] = cloud_mode
        config['sim.workspace'] = 'workspace-cloud' if cloud_mode else 'workspace-edge'
        result = simulate(dict(config), Top)
        print('CLOUD-ONLY' if cloud_mode else 'EDGE-WARD')
        for loop_id, delay in result['fog.loop_delay'].items():
            print(f'  loop {loop_id} delay: {delay:.2f} ms')
        for tuple_type, cpu_time in result['fog.tuple_cpu_time'].items():
            print(f'  {tuple_type} ---> {cpu_time}')
        print(f'  network usage: {result["fog.network_usage_rate"]:.2f} per ms')
