"""Model soil-moisture driven irrigation on a single fog node.

Soil-moisture sensors and irrigation actuators hang off one fog node over a
LoRaWAN link; the fog node reaches the cloud over a WAN link. A biometric
scanner authenticates farm workers. Moisture readings are processed into
irrigation triggers, which a control service turns into control signals for
the irrigation actuators, while hourly summaries go to a storage service.

The model is swept over the number of sensor/actuator pairs and over two
deployments: *fog*, where everything but storage runs on the fog node, and
*cloud*, where every module runs in the cloud. Each combination runs as a
separate simulation in its own workspace.

This example demonstrates:
 - Sweeping configuration factors with :func:`simulate_factors`
 - Pinning modules while placing the rest edge-ward
 - Loops closing at modules as well as at actuators

"""
from fogmod.application import (
    AppLoop,
    Application,
    Direction,
    EdgeKind,
)
from fogmod.controller import Controller
from fogmod.hierarchy import Device, DeviceHierarchy
from fogmod.placement import (
    EdgewardPlacement,
    ExplicitPlacement,
    ModuleMapping,
)
from fogmod.simulation import simulate_factors

LORAWAN_BANDWIDTH = 50
LORAWAN_LATENCY = 10
WAN_BANDWIDTH = 10000
WAN_LATENCY = 100


def build_hierarchy(config):
    num_sensors = config.setdefault('farm.sensors', 3)
    moisture_interval = config.setdefault('farm.moisture.interval', 1000)
    auth_interval = config.setdefault('farm.auth.interval', 2000)

    hierarchy = DeviceHierarchy()
    hierarchy.add_device(Device('Cloud', 44800, 40000, WAN_BANDWIDTH, WAN_BANDWIDTH))
    hierarchy.add_device(
        Device('FogNode', 5000, 8000, WAN_BANDWIDTH, WAN_BANDWIDTH, WAN_LATENCY),
        'Cloud',
    )
    for i in range(num_sensors):
        hierarchy.add_sensor(
            f'Sensor-{i}', 'SOIL_MOISTURE', 'FogNode', LORAWAN_LATENCY,
            moisture_interval,
        )
        hierarchy.add_actuator(
            f'Actuator-{i}', 'IRRIGATION_CONTROL', 'FogNode', LORAWAN_LATENCY
        )
    hierarchy.add_sensor(
        'BiometricScanner', 'AUTHENTICATE_USER', 'FogNode', LORAWAN_LATENCY,
        auth_interval,
    )
    return hierarchy


def build_application(app_id):
    app = Application(app_id)
    app.add_app_module('auth-service', 200, 1000, 512)
    app.add_app_module('processing-service', 300, 1000, 512)
    app.add_app_module('control-service', 100, 1000, 512)
    app.add_app_module('storage-service', 500, 1000, 512)

    app.add_app_edge('AUTHENTICATE_USER', 'auth-service', 'AUTH_DATA',
                     Direction.UP, EdgeKind.SENSOR, 1000, 200)
    app.add_app_edge('SOIL_MOISTURE', 'processing-service', 'MOISTURE_DATA',
                     Direction.UP, EdgeKind.SENSOR, 1000, 500)
    app.add_app_edge('processing-service', 'control-service', 'TRIGGER_IRRIGATION',
                     Direction.UP, EdgeKind.MODULE, 100, 50)
    app.add_app_edge('processing-service', 'storage-service', 'HOURLY_SUMMARY',
                     Direction.UP, EdgeKind.MODULE, 500, 200)
    app.add_app_edge('control-service', 'IRRIGATION_CONTROL', 'CONTROL_SIGNAL',
                     Direction.DOWN, EdgeKind.ACTUATOR, 100, 50)

    app.add_tuple_mapping('processing-service', 'MOISTURE_DATA',
                          'TRIGGER_IRRIGATION', 1.0)
    # One summary per hour of one-second readings.
    app.add_tuple_mapping('processing-service', 'MOISTURE_DATA',
                          'HOURLY_SUMMARY', 1 / 3600)
    app.add_tuple_mapping('control-service', 'TRIGGER_IRRIGATION',
                          'CONTROL_SIGNAL', 1.0)

    app.set_loops([
        AppLoop(['SOIL_MOISTURE', 'processing-service', 'control-service',
                 'IRRIGATION_CONTROL'], loop_id='irrigation'),
        AppLoop(['SOIL_MOISTURE', 'processing-service', 'storage-service'],
                loop_id='summary'),
        AppLoop(['AUTHENTICATE_USER', 'auth-service'], loop_id='auth'),
    ])
    return app


class Top(Controller):
    """Irrigation control with fog or cloud deployment."""

    def __init__(self, *args, **kwargs):
        config = kwargs['env'].config
        hierarchy = build_hierarchy(config)
        super().__init__(*args, hierarchy=hierarchy, **kwargs)
        deployment = config.setdefault('farm.deployment', 'fog')
        app = build_application(f'FarmApp-{deployment}')
        if deployment == 'fog':
            pinned = ModuleMapping()
            pinned.add_module_to_device('storage-service', 'Cloud')
            policy = EdgewardPlacement(pinned)
        elif deployment == 'cloud':
            policy = ExplicitPlacement(ModuleMapping.cloud_only(app, hierarchy))
        else:
            raise ValueError(f'unknown deployment "{deployment}"')
        self.submit_application(app, policy)


config = {
    'farm.deployment': 'fog',
    'farm.sensors': 3,
    'farm.moisture.interval': 1000,
    'farm.auth.interval': 2000,
    'sim.duration': '3600 s',
    'sim.log.enable': True,
    'sim.log.file': 'sim.log',
    'sim.log.level': 'WARNING',
    'sim.result.file': 'results.yaml',
    'sim.seed': 1234,
    'sim.timescale': 'ms',
    'sim.workspace': 'workspace',
    'sim.workspace.overwrite': True,
}

factors = [
    (['farm.sensors'], [[3], [15], [25]]),
    (['farm.deployment'], [['fog'], ['cloud']]),
]

if __name__ == '__main__':
    for result in simulate_factors(config, factors, Top):
        cfg = result['config']
        if result['sim.exception']:
            print(cfg['farm.sensors'], cfg['farm.deployment'], result['sim.exception'])
            continue
        delay = result['fog.loop_delay'].get('irrigation')
        print(
            f'{cfg["farm.sensors"]:3} sensors {cfg["farm.deployment"]:5}: '
            f'irrigation loop {delay} ms, '
            f'network usage {result["fog.network_usage"]:.0f}'
        )
