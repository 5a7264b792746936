"""Probe port selection.

Some access points and mesh nodes drop repeated SYNs to one closed port on
a sleeping phone. Devices configured with port ``"auto"`` therefore pick
one of two well-known probe ports at random on every scan.
"""
from __future__ import annotations

import random
from typing import Protocol, Sequence

from smart_presence.models import AUTO_PORT

DEFAULT_AUTO_PORTS: tuple[int, int] = (32000, 32001)


class PortSelector(Protocol):
    def select(self, configured_port: int | str) -> int: ...


class AutoPortSelector:
    """Use the configured port, or alternate randomly for ``"auto"``.

    Parameters
    ----------
    auto_ports:
        Candidate ports for auto-configured devices.
    rng:
        Random source; pass a seeded ``random.Random`` for reproducible tests.
    """

    def __init__(
        self,
        auto_ports: Sequence[int] = DEFAULT_AUTO_PORTS,
        rng: random.Random | None = None,
    ) -> None:
        if not auto_ports:
            raise ValueError("auto_ports must not be empty")
        self._auto_ports = tuple(auto_ports)
        self._rng = rng or random.Random()

    @property
    def auto_ports(self) -> tuple[int, ...]:
        return self._auto_ports

    def select(self, configured_port: int | str) -> int:
        if configured_port == AUTO_PORT:
            return self._rng.choice(self._auto_ports)
        return int(configured_port)
