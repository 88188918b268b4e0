import pytest

from fogmod.component import Component, ConnectError


class Node(Component):
    base_name = 'node'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.add_connections('router')
        self.started = []
        self.add_process(self._run)

    def _run(self):
        yield self.env.timeout(1)
        self.started.append(self.env.now)


class Top(Component):
    base_name = 'fog'

    def __init__(self, *args, wire=True, **kwargs):
        super().__init__(*args, **kwargs)
        self.router = object()
        self.wire = wire
        self.nodes = [Node(self, name=f'node{i}') for i in range(2)]

    def connect_children(self):
        if self.wire:
            for node in self.nodes:
                self.connect(node, 'router')


def test_scope_and_connections(env):
    top = Top(None, env)
    assert [node.scope for node in top.nodes] == ['fog.node0', 'fog.node1']
    top.elaborate()
    env.run()
    for node in top.nodes:
        assert node.router is top.router
        assert node.started == [1]


def test_unconnected_child(env):
    top = Top(None, env, wire=False)
    with pytest.raises(ConnectError) as exc_info:
        top.elaborate()
    assert 'fog.node0.router not connected' in str(exc_info.value)


def test_connect_undeclared(env):
    top = Top(None, env)
    with pytest.raises(ConnectError):
        top.connect(top, 'router')


def test_connect_missing_attribute(env):
    top = Top(None, env)
    del top.router
    with pytest.raises(ConnectError):
        top.connect(top.nodes[0], 'router')


def test_parent_or_env_required():
    with pytest.raises(AssertionError):
        Component(None)
