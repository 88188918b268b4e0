import pytest

from fogmod.simulation import SimEnvironment


@pytest.fixture
def config():
    return {
        'sim.seed': 1234,
        'sim.timescale': '1 ms',
        'sim.duration': '0 ms',
        'sim.log.enable': False,
        'sim.vcd.enable': False,
    }


@pytest.fixture
def env(config):
    """Fixture providing SimEnvironment for tests with `env` argument."""
    return SimEnvironment(config)


@pytest.fixture
def cleandir(tmpdir):
    with tmpdir.as_cwd():
        yield tmpdir
