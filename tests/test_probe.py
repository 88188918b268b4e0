import pytest
import simpy

from fogmod.probe import attach


@pytest.mark.parametrize('target', ['a string', None])
def test_attach_bad_type(env, target):
    with pytest.raises(TypeError):
        attach('fog.gw.inbox', target, [])


def test_attach_container_rejected(env):
    with pytest.raises(TypeError) as exc_info:
        attach('fog.gw.credits', simpy.Container(env), [])
    assert 'fog.gw.credits' in str(exc_info.value)


def test_inbox_depth(env):
    values = []
    inbox = simpy.Store(env)
    attach('fog.gw.inbox', inbox, [values.append])

    def proc():
        yield inbox.put('tuple0')
        yield inbox.put('tuple1')
        yield inbox.put('tuple2')
        item = yield inbox.get()
        assert item == 'tuple0'

    env.process(proc())
    env.run()
    assert values == [1, 2, 3, 2]


def test_inbox_depth_multiple_callbacks(env):
    first, second = [], []
    inbox = simpy.Store(env)
    attach('fog.gw.inbox', inbox, (cb for cb in [first.append, second.append]))

    def proc():
        yield inbox.put('tuple0')
        yield inbox.get()

    env.process(proc())
    env.run()
    assert first == second == [1, 0]


def test_blocked_put_reports_once_accepted(env):
    values = []
    inbox = simpy.Store(env, capacity=1)
    attach('fog.gw.inbox', inbox, [values.append])

    def producer():
        yield inbox.put('tuple0')
        yield inbox.put('tuple1')

    def consumer():
        yield env.timeout(5)
        yield inbox.get()

    env.process(producer())
    env.process(consumer())
    env.run()
    # The get empties the store, then the waiting put refills it.
    assert values == [1, 0, 1]
