"""Simulation configuration helpers.

A fog simulation is configured with a single, flat dictionary whose keys use
a dotted naming convention. Keys prefixed with ``sim.`` belong to the
simulation infrastructure (``sim.duration``, ``sim.seed``, ``sim.log.level``,
...) while keys prefixed with ``fog.`` configure the fog model itself (e.g.
``fog.sensor.interval``). Models are free to add their own namespaces.

Components read configuration values with ``config.setdefault()`` so that the
effective configuration, defaults included, is captured in the dumped config
file after a run.

"""
from collections.abc import Sequence
from copy import deepcopy
from itertools import product
from typing import Any, Dict, Iterator, List, Optional, Tuple
import builtins

ConfigDict = Dict[str, Any]
ConfigFactor = Tuple[List[str], List[List[Any]]]


class ConfigError(Exception):
    """Raised for unknown, ambiguous, or ill-typed configuration."""


def fuzzy_lookup(config: ConfigDict, fuzzy_key: str) -> Tuple[str, Any]:
    """Find a config item from an unambiguous tail of its key.

    ``fuzzy_lookup(config, 'interval')`` finds ``'fog.sensor.interval'`` as
    long as no other key ends with ``interval``.

    :returns: `(key, value)` with the fully-qualified key.
    :raises ConfigError: When no key, or more than one key, matches.

    """
    if fuzzy_key in config:
        return fuzzy_key, config[fuzzy_key]

    split_matches = [k for k in config if k.rsplit('.', 1)[-1] == fuzzy_key]
    suffix_matches = [
        k for k in config if k not in split_matches and k.endswith(fuzzy_key)
    ]
    for matches in (split_matches, suffix_matches):
        if len(matches) == 1:
            return matches[0], config[matches[0]]
    if not split_matches and not suffix_matches:
        raise ConfigError(f'Invalid config key "{fuzzy_key}"')
    raise ConfigError(
        f'Ambiguous config key "{fuzzy_key}"; possible matches: '
        f'{", ".join(split_matches + suffix_matches)}'
    )


def apply_user_overrides(
    config: ConfigDict,
    overrides: List[Tuple[str, str]],
    eval_locals: Optional[Dict[str, Any]] = None,
) -> None:
    """Apply `(fuzzy key, expression)` overrides to `config` in place.

    Each expression is evaluated in a restricted namespace and coerced to the
    type of the value it replaces.

    """
    for user_key, user_expr in overrides:
        key, current_value = fuzzy_lookup(config, user_key)
        config[key] = _safe_eval(user_expr, type(current_value), eval_locals)


def parse_user_factor(
    config: ConfigDict,
    user_keys: str,
    user_exprs: str,
    eval_locals: Optional[Dict[str, Any]] = None,
) -> ConfigFactor:
    """Parse a comma-separated key list and a values expression into a factor.

    >>> parse_user_factor({'fog.sensor.count': 4}, 'count', '[3, 15, 25]')
    (['fog.sensor.count'], [[3], [15], [25]])

    """
    current = [fuzzy_lookup(config, k.strip()) for k in user_keys.split(',')]
    user_values = _safe_eval(user_exprs, eval_locals=eval_locals)
    if not isinstance(user_values, Sequence):
        raise ConfigError(f'Factor value not a sequence "{user_values}"')
    values = []
    for user_items in user_values:
        if len(current) == 1:
            user_items = [user_items]
        items = []
        for (_, current_value), item in zip(current, user_items):
            current_type = type(current_value)
            if not isinstance(item, current_type):
                try:
                    item = current_type(item)
                except (ValueError, TypeError):
                    raise ConfigError(
                        f'Failed to coerce {item} to {current_type.__name__}'
                    )
            items.append(item)
        values.append(items)
    return [key for key, _ in current], values


def factorial_config(
    base_config: ConfigDict,
    factors: List[ConfigFactor],
    special_key: Optional[str] = None,
) -> Iterator[ConfigDict]:
    """Yield one config per combination of `factors`.

    Each factor is a `(keys, values_list)` pair. `base_config` is deep-copied
    for each yielded config. When `special_key` is given, the combination of
    factor key/values applied to a config is recorded under that key.

    """
    unrolled = [
        [(keys, values) for values in values_list] for keys, values_list in factors
    ]
    for combination in product(*unrolled):
        config = deepcopy(base_config)
        special: List[List[Any]] = []
        if special_key:
            config[special_key] = special
        for keys, values in combination:
            for key, value in zip(keys, values):
                config[key] = value
                if special_key:
                    special.append([key, value])
        yield config


_safe_builtins = [
    'abs', 'bool', 'dict', 'float', 'frozenset', 'int', 'len', 'list', 'max',
    'min', 'range', 'round', 'set', 'str', 'sum', 'tuple', 'zip',
]

_default_eval_locals = {
    name: getattr(builtins, name)
    for name in _safe_builtins
    if hasattr(builtins, name)
}


def _safe_eval(
    expr: str,
    coerce_type: Optional[type] = None,
    eval_locals: Optional[Dict[str, Any]] = None,
) -> Any:
    if eval_locals is None:
        eval_locals = _default_eval_locals
    try:
        value = eval(expr, {'__builtins__': None}, eval_locals)
    except Exception:
        if coerce_type is not None and issubclass(coerce_type, str):
            value = expr
        else:
            raise ConfigError(f'Failed evaluation of expression "{expr}"')

    if coerce_type is not None:
        if expr in eval_locals and not isinstance(value, coerce_type):
            value = expr
        if not isinstance(value, coerce_type):
            try:
                value = coerce_type(value)
            except (ValueError, TypeError):
                raise ConfigError(
                    f'Failed to coerce expression "{expr}" to {coerce_type.__name__}'
                )
    return value
