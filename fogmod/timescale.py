"""Parsing and scaling of simulation time values.

Fog models are usually written against a millisecond timescale (link
latencies and sensor periods are given in ms), but any SI sub-second unit
is accepted.

"""
from typing import Optional, Tuple, Union
import re

TimeValue = Tuple[Union[int, float], str]

_unit_map = {
    's': 1e0,
    'ms': 1e3,
    'us': 1e6,
    'ns': 1e9,
    'ps': 1e12,
    'fs': 1e15,
}

_num_re = r'[-+]? (?: \d*\.\d+ | \d+\.?\d* ) (?: [eE] [-+]? \d+)?'

_time_re = re.compile(
    rf'(?P<num>{_num_re})? \s? (?P<unit> [fpnum]? s)?', re.VERBOSE
)


def parse_time(time_str: str, default_unit: Optional[str] = None) -> TimeValue:
    """Parse a time string such as ``'50 ms'`` or ``'1.5e3 us'``.

    :param str time_str: Time string to parse.
    :param str default_unit:
        Unit to assume when `time_str` carries a magnitude only.
    :returns: `(magnitude, unit)` tuple; magnitude is an int when possible.
    :raises ValueError: For malformed strings or a missing unit.

    """
    match = _time_re.fullmatch(time_str)
    if not time_str or not match:
        raise ValueError(f'Invalid time string "{time_str}"')
    num_str = match.group('num')
    if num_str:
        try:
            num: Union[int, float] = int(num_str)
        except ValueError:
            num = float(num_str)
    else:
        num = 1

    unit = match.group('unit') or default_unit
    if not unit:
        raise ValueError(f'No unit specified in "{time_str}"')
    return num, unit


def scale_time(from_time: TimeValue, to_time: TimeValue) -> Union[int, float]:
    """Express `from_time` as a multiple of `to_time`.

    E.g. ``scale_time((50, 'ms'), (1, 'us')) == 50000``.

    """
    from_t, from_u = from_time
    to_t, to_u = to_time
    scaled = (_unit_map[to_u] / _unit_map[from_u] * from_t) / to_t
    if scaled % 1.0 == 0.0:
        return int(scaled)
    return scaled
