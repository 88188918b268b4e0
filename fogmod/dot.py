"""Generate graphical representations of fog models.

Two graphs can be rendered with the `Graphviz`_ `DOT language`_:

 - :func:`application_to_dot` draws an application's dataflow graph: sensor
   types, modules and actuator types joined by edges labeled with their
   tuple types.
 - :func:`hierarchy_to_dot` draws the device tree with uplink latencies,
   attached endpoints and, optionally, the modules placed on each device.

The ``dot`` program renders the generated files::

    dot -Tpng -o hier.png hier.dot

.. _Graphviz: http://graphviz.org/
.. _DOT language: http://graphviz.org/content/dot-language

"""
from itertools import cycle
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

from .application import Application, Direction, EdgeKind
from .config import ConfigDict
from .hierarchy import DeviceHierarchy

if TYPE_CHECKING:
    from .controller import Controller

_color_cycle = cycle([
    'dodgerblue4',
    'darkgreen',
    'darkorchid',
    'darkslategray',
    'deeppink4',
    'goldenrod4',
    'firebrick4',
])


def generate_dot(controller: 'Controller', config: Optional[ConfigDict] = None) -> None:
    """Write DOT files according to the 'sim.dot' configuration.

    Nothing is written unless ``sim.dot.enable`` is true. The
    ``sim.dot.app.file`` item is a format string with an ``{app_id}`` field
    naming each application's graph file; ``sim.dot.hier.file`` names the
    device tree file. Either may be the empty string to skip that graph.

    """
    config = controller.env.config if config is None else config

    enable: bool = config.setdefault('sim.dot.enable', False)
    app_filename: str = config.setdefault('sim.dot.app.file', 'app_{app_id}.dot')
    hier_filename: str = config.setdefault('sim.dot.hier.file', 'hier.dot')

    if not enable:
        return

    if app_filename:
        for app_id, application in controller.applications.items():
            with open(app_filename.format(app_id=app_id), 'w') as dot_file:
                dot_file.write(application_to_dot(application))

    if hier_filename:
        placed: Dict[str, List[str]] = {}
        for app_id, table in controller.placements.items():
            for module, device in table.items():
                placed.setdefault(device, []).append(f'{app_id}.{module}')
        with open(hier_filename, 'w') as dot_file:
            dot_file.write(hierarchy_to_dot(controller.hierarchy, placed))


def application_to_dot(application: Application) -> str:
    """Produce a DOT digraph of an application's modules and edges.

    Modules are boxes, sensor types are inverted houses and actuator types
    are houses. Edges of each tuple type share a color; edges belonging to
    a control loop are drawn bold.

    """
    indent = '    '
    lines = [f'digraph "{application.app_id}" {{', indent + 'rankdir=BT;']
    for sensor_type in application.sensor_types:
        lines.append(indent + f'"{sensor_type}" [shape=invhouse];')
    for module in application.modules:
        lines.append(
            indent
            + f'"{module.name}" [shape=box,style=rounded,'
            f'label=<<b>{module.name}</b><br/>{module.mips} mips>];'
        )
    for actuator_type in application.actuator_types:
        lines.append(indent + f'"{actuator_type}" [shape=house];')

    loop_links = set()
    for loop in application.loops:
        loop_links.update(zip(loop.path, loop.path[1:]))

    colors: Dict[str, str] = {}
    for edge in application.edges:
        color = colors.setdefault(edge.tuple_type, next(_color_cycle))
        attrs = {
            'label': f'"{edge.tuple_type}"',
            'color': color,
            'fontcolor': color,
        }
        if (edge.source, edge.destination) in loop_links:
            attrs['style'] = 'bold'
        if edge.kind is EdgeKind.MODULE and edge.direction is Direction.DOWN:
            attrs['constraint'] = 'false'
        lines.append(
            indent + f'"{edge.source}" -> "{edge.destination}" [{_join_attrs(attrs)}];'
        )
    lines.append('}')
    return '\n'.join(lines)


def hierarchy_to_dot(
    hierarchy: DeviceHierarchy, placed: Optional[Mapping[str, List[str]]] = None
) -> str:
    """Produce a DOT digraph of the device tree.

    :param DeviceHierarchy hierarchy: The devices and endpoints to draw.
    :param placed:
        Optional map of device name to the (qualified) names of modules
        placed on it; they are listed in the device's label.

    """
    placed = placed or {}
    indent = '    '
    lines = ['digraph hierarchy {', indent + 'rankdir=TB;']
    for device in hierarchy:
        label = [
            f'<b>{device.name}</b><br align="left"/>',
            f'level {hierarchy.level(device.name)}, {device.mips} mips'
            '<br align="left"/>',
        ]
        label.extend(
            f'<i>{module}</i><br align="left"/>'
            for module in placed.get(device.name, [])
        )
        lines.append(
            indent + f'"{device.name}" [shape=box,style=rounded,label=<{"".join(label)}>];'
        )
    for device in hierarchy:
        parent = hierarchy.parent(device.name)
        if parent is not None:
            lines.append(
                indent
                + f'"{parent.name}" -> "{device.name}" '
                f'[label="{device.uplink_latency}"];'
            )
    for sensor in hierarchy.sensors:
        lines.append(indent + f'"{sensor.name}" [shape=invhouse];')
        lines.append(indent + f'"{sensor.gateway}" -> "{sensor.name}" [style=dashed];')
    for actuator in hierarchy.actuators:
        lines.append(indent + f'"{actuator.name}" [shape=house];')
        lines.append(
            indent + f'"{actuator.gateway}" -> "{actuator.name}" [style=dashed];'
        )
    lines.append('}')
    return '\n'.join(lines)


def _join_attrs(attrs: Mapping[str, str]) -> str:
    return ','.join(f'{k}={v}' for k, v in sorted(attrs.items()))
