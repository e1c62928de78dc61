"""Utility functions shared across coldvault modules."""

import dataclasses
import os
import typing
from typing import Any
from typing import Callable
from typing import TypeVar


T = TypeVar("T")


def env(key: str, convert: Callable[[str], T] = typing.cast(Callable[[str], T], str), **kwargs: Any) -> T:
    """Declare a dataclass field read from the environment.

    The key may carry an inline default after a colon ("NAME:default"); a key
    without a colon is required and raises KeyError when missing.
    """
    key, partition, default = key.partition(":")

    def default_factory(
        key_val: str = key, default_val: str = default, convert_func: Callable[[str], T] = convert
    ) -> T:
        if key_val in os.environ:
            return convert_func(os.environ[key_val])

        if partition == ":":
            return convert_func(default_val)

        raise KeyError(key_val)

    return typing.cast(T, dataclasses.field(default_factory=default_factory, **kwargs))


def env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0
