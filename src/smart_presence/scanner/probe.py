"""Single TCP connect reachability probe.

A phone that is on the network but keeps its ports closed still answers a
TCP SYN with a RST, so a refused connection counts as reachable just like
a completed one. Only silence (timeout) and routing failures count against
presence.
"""
from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class ProbeOutcome(str, Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    ERROR = "error"


class ProbeErrorKind(str, Enum):
    HOST_UNREACHABLE = "host_unreachable"
    NETWORK_UNREACHABLE = "network_unreachable"
    UNKNOWN = "unknown"


_ERRNO_KINDS = {
    errno.EHOSTUNREACH: ProbeErrorKind.HOST_UNREACHABLE,
    errno.ENETUNREACH: ProbeErrorKind.NETWORK_UNREACHABLE,
}


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one reachability check."""

    outcome: ProbeOutcome
    error_kind: ProbeErrorKind | None = None
    detail: str | None = None

    @property
    def reachable(self) -> bool:
        return self.outcome is ProbeOutcome.REACHABLE

    @classmethod
    def error(cls, kind: ProbeErrorKind, detail: str) -> ProbeResult:
        return cls(ProbeOutcome.ERROR, error_kind=kind, detail=detail)


REACHABLE = ProbeResult(ProbeOutcome.REACHABLE)
UNREACHABLE = ProbeResult(ProbeOutcome.UNREACHABLE)


async def attempt_connect(host: str, port: int, timeout: float) -> ProbeResult:
    """Try one TCP connection to ``host:port`` and classify the outcome.

    Parameters
    ----------
    host:
        IP address of the device.
    port:
        TCP port to connect to.
    timeout:
        Seconds to wait for the connection to complete or be refused.

    Returns
    -------
    ProbeResult:
        ``REACHABLE`` on connect or refusal, ``UNREACHABLE`` on timeout,
        ``ERROR`` with a kind for routing and other I/O failures.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, TimeoutError):
        return UNREACHABLE
    except ConnectionRefusedError:
        return REACHABLE
    except OSError as exc:
        kind = _ERRNO_KINDS.get(exc.errno, ProbeErrorKind.UNKNOWN)
        detail = f"{type(exc).__name__}: {exc}"
        if kind is ProbeErrorKind.UNKNOWN:
            logger.info("Probe %s:%d failed with unclassified error: %s", host, port, detail)
        return ProbeResult.error(kind, detail)

    await _close_quietly(writer)
    return REACHABLE


async def _close_quietly(writer: asyncio.StreamWriter) -> None:
    """Close a connected stream, ignoring errors from an already-reset peer."""
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass
