"""Bit-timing data types and the integer helpers shared by the calculation algorithms."""

from __future__ import annotations

import errno
from dataclasses import dataclass

CAN_CALC_MAX_ERROR = 50  # in one-tenth of a percent
CAN_SYNC_SEG = 1
NSEC_PER_SEC = 1_000_000_000
KILO = 1000
UINT_MAX = 0xFFFFFFFF


@dataclass
class BitTiming:
    """Bit-timing parameters of one CAN bus configuration."""

    bitrate: int = 0
    sample_point: int = 0  # in one-tenth of a percent
    tq: int = 0  # time quantum in ns
    prop_seg: int = 0
    phase_seg1: int = 0
    phase_seg2: int = 0
    sjw: int = 0
    brp: int = 0

    @property
    def tseg1(self) -> int:
        """Time segment 1: propagation segment plus phase segment 1."""
        return self.prop_seg + self.phase_seg1


@dataclass(frozen=True)
class BitTimingConst:
    """Hardware limits of a CAN controller's bit-timing registers."""

    name: str
    tseg1_min: int
    tseg1_max: int
    tseg2_min: int
    tseg2_max: int
    sjw_max: int
    brp_min: int
    brp_max: int
    brp_inc: int = 1


@dataclass(frozen=True)
class RefClock:
    """A reference clock frequency in Hz, optionally with a descriptive name."""

    clk: int
    name: str | None = None


class BitTimingError(ValueError):
    """Raised when bit-timing parameters cannot be calculated or are invalid."""

    def __init__(self, message: str, code: int = errno.EINVAL) -> None:
        super().__init__(message)
        self.code = code


def clamp(value: int, low: int, high: int) -> int:
    """Return value limited to the range low..high."""
    return min(max(value, low), high)


def div_round_closest(dividend: int, divisor: int) -> int:
    """Unsigned integer division rounded to the nearest integer."""
    return (dividend + divisor // 2) // divisor


def cia_sample_point(bitrate: int) -> int:
    """Return the CiA recommended sample point for a bitrate, in tenths of a percent."""
    if bitrate > 800_000:
        return 750
    if bitrate > 500_000:
        return 800
    return 875