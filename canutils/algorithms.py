"""Bit-timing calculation as done by the v5.16, v5.19 and v6.3 kernels, and the algorithm registry."""

from __future__ import annotations

import errno
from dataclasses import dataclass, replace
from typing import Callable

from canutils.algorithms_legacy import (
    _abs32,
    _fixup,
    _raise_if_too_high,
    _tseg_range,
    _u32,
    _update_sample_point,
    calc_bittiming_v2_6_31,
    calc_bittiming_v3_18,
    calc_bittiming_v4_8,
    fixup_bittiming_v2_6_31,
    fixup_bittiming_v3_18,
    fixup_bittiming_v4_8,
)
from canutils.timing import (
    CAN_CALC_MAX_ERROR,
    CAN_SYNC_SEG,
    KILO,
    NSEC_PER_SEC,
    UINT_MAX,
    BitTiming,
    BitTimingConst,
    BitTimingError,
    div_round_closest,
)

TimingFunction = Callable[[int, BitTiming, BitTimingConst], BitTiming]


@dataclass(frozen=True)
class Algorithm:
    """A named pair of calculation and fixup functions."""

    name: str
    calc: TimingFunction
    fixup: TimingFunction


def _nominal_sample_point(bt: BitTiming) -> int:
    if bt.sample_point:
        return bt.sample_point
    if bt.bitrate > 800 * KILO:
        return 750
    if bt.bitrate > 500 * KILO:
        return 800
    return 875


@dataclass
class _Search:
    sample_point_nominal: int
    best_bitrate_error: int
    best_tseg: int
    best_brp: int
    tseg1: int
    tseg2: int


def _search(
    clock: int, bt: BitTiming, btc: BitTimingConst, strict: bool
) -> _Search:
    """Search the tseg/brp space; strict rejects ties in the sample point error."""
    sample_point_nominal = _nominal_sample_point(bt)
    bitrate_nominal = bt.bitrate
    best_bitrate_error = UINT_MAX
    best_sample_point_error = UINT_MAX
    best_tseg = best_brp = 0
    tseg1 = tseg2 = 0

    for tseg in _tseg_range(btc):
        tsegall = CAN_SYNC_SEG + tseg // 2
        brp = clock // _u32(tsegall * bitrate_nominal) + tseg % 2
        brp = (brp // btc.brp_inc) * btc.brp_inc
        if brp < btc.brp_min or brp > btc.brp_max:
            continue

        bitrate = clock // _u32(brp * tsegall)
        bitrate_error = _abs32(bitrate_nominal - bitrate)
        if bitrate_error > best_bitrate_error:
            continue
        # reset sample point error if we have a better bitrate
        if bitrate_error < best_bitrate_error:
            best_sample_point_error = UINT_MAX

        _, sample_point_error, tseg1, tseg2 = _update_sample_point(
            btc, sample_point_nominal, tseg // 2, tseg1, tseg2
        )
        if sample_point_error > best_sample_point_error or (
            strict and sample_point_error == best_sample_point_error
        ):
            continue

        best_sample_point_error = sample_point_error
        best_bitrate_error = bitrate_error
        best_tseg = tseg // 2
        best_brp = brp

        if bitrate_error == 0 and sample_point_error == 0:
            break

    return _Search(
        sample_point_nominal, best_bitrate_error, best_tseg, best_brp, tseg1, tseg2
    )


def _bitrate_error_permille(found: _Search, bitrate_nominal: int) -> int:
    """Bitrate error in one-tenth of a percent."""
    return _u32(found.best_bitrate_error * 1000 // bitrate_nominal)


def _limit_sjw(sjw: int, sjw_max: int, tseg2: int) -> int:
    if not sjw or not sjw_max:
        return 1
    return min(sjw, sjw_max, tseg2)


def _calc_classic(
    clock: int, bt: BitTiming, btc: BitTimingConst, strict: bool
) -> BitTiming:
    found = _search(clock, bt, btc, strict)
    if found.best_bitrate_error:
        _raise_if_too_high(_bitrate_error_permille(found, bt.bitrate))

    sample_point, _, tseg1, tseg2 = _update_sample_point(
        btc, found.sample_point_nominal, found.best_tseg, found.tseg1, found.tseg2
    )
    prop_seg = tseg1 // 2
    best_brp = found.best_brp
    return replace(
        bt,
        sample_point=sample_point,
        tq=_u32(best_brp * NSEC_PER_SEC // clock),
        prop_seg=prop_seg,
        phase_seg1=tseg1 - prop_seg,
        phase_seg2=tseg2,
        sjw=_limit_sjw(bt.sjw, btc.sjw_max, tseg2),
        brp=best_brp,
        bitrate=clock // _u32(best_brp * (CAN_SYNC_SEG + tseg1 + tseg2)),
    )


def bit_time(bt: BitTiming) -> int:
    """Return the number of time quanta in one bit."""
    return CAN_SYNC_SEG + bt.prop_seg + bt.phase_seg1 + bt.phase_seg2


def sjw_set_default(bt: BitTiming) -> BitTiming:
    """Return bt with sjw defaulted to phase_seg2 / 2 (at least 1) when unset."""
    if bt.sjw:
        return bt
    return replace(bt, sjw=max(1, min(bt.phase_seg1, bt.phase_seg2 // 2)))


def sjw_check(bt: BitTiming, btc: BitTimingConst) -> None:
    """Raise BitTimingError if sjw exceeds the controller limit or a phase segment."""
    if bt.sjw > btc.sjw_max:
        raise BitTimingError(f"sjw: {bt.sjw} greater than max sjw: {btc.sjw_max}")
    if bt.sjw > bt.phase_seg1:
        raise BitTimingError(
            f"sjw: {bt.sjw} greater than phase-seg1: {bt.phase_seg1}"
        )
    if bt.sjw > bt.phase_seg2:
        raise BitTimingError(
            f"sjw: {bt.sjw} greater than phase-seg2: {bt.phase_seg2}"
        )


def calc_bittiming_v5_16(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Calculate bit-timing keeping the sample point at or below the nominal one."""
    return _calc_classic(clock, bt, btc, strict=False)


def fixup_bittiming_v5_16(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Validate given segments and derive brp, bitrate and sample point."""
    return _fixup(clock, bt, btc)


def calc_bittiming_v5_19(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """As v5.16, but the first candidate wins ties in the sample point error."""
    return _calc_classic(clock, bt, btc, strict=True)


def fixup_bittiming_v5_19(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Validate given segments and derive brp, bitrate and sample point."""
    return _fixup(clock, bt, btc)


def calc_bittiming_v6_3(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Calculate bit-timing with the v6.3 sjw default and checks."""
    found = _search(clock, bt, btc, strict=True)
    if found.best_bitrate_error:
        error = _bitrate_error_permille(found, bt.bitrate)
        if error > CAN_CALC_MAX_ERROR:
            raise BitTimingError(
                f"bitrate error: {error // 10}.{error % 10}% too high", errno.EINVAL
            )

    sample_point, _, tseg1, tseg2 = _update_sample_point(
        btc, found.sample_point_nominal, found.best_tseg, found.tseg1, found.tseg2
    )
    prop_seg = tseg1 // 2
    result = replace(
        bt,
        sample_point=sample_point,
        tq=_u32(found.best_brp * NSEC_PER_SEC // clock),
        prop_seg=prop_seg,
        phase_seg1=tseg1 - prop_seg,
        phase_seg2=tseg2,
    )
    result = sjw_set_default(result)
    sjw_check(result, btc)

    result.brp = found.best_brp
    result.bitrate = clock // _u32(result.brp * bit_time(result))
    return result


def fixup_bittiming_v6_3(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Validate given segments, default and check sjw, and derive brp, bitrate, tq."""
    tseg1 = bt.prop_seg + bt.phase_seg1
    if tseg1 < btc.tseg1_min:
        raise BitTimingError(
            f"prop-seg + phase-seg1: {tseg1} less than tseg1-min: {btc.tseg1_min}"
        )
    if tseg1 > btc.tseg1_max:
        raise BitTimingError(
            f"prop-seg + phase-seg1: {tseg1} greater than tseg1-max: {btc.tseg1_max}"
        )
    if bt.phase_seg2 < btc.tseg2_min:
        raise BitTimingError(
            f"phase-seg2: {bt.phase_seg2} less than tseg2-min: {btc.tseg2_min}"
        )
    if bt.phase_seg2 > btc.tseg2_max:
        raise BitTimingError(
            f"phase-seg2: {bt.phase_seg2} greater than tseg2-max: {btc.tseg2_max}"
        )

    result = sjw_set_default(replace(bt))
    sjw_check(result, btc)

    brp64 = clock * bt.tq
    if btc.brp_inc > 1:
        brp64 //= btc.brp_inc
    brp64 = (brp64 + 500_000_000 - 1) // NSEC_PER_SEC  # the practicable BRP
    if btc.brp_inc > 1:
        brp64 *= btc.brp_inc
    brp = _u32(brp64)

    if brp < btc.brp_min:
        raise BitTimingError(f"resulting brp: {brp} less than brp-min: {btc.brp_min}")
    if brp > btc.brp_max:
        raise BitTimingError(
            f"resulting brp: {brp} greater than brp-max: {btc.brp_max}"
        )

    result.brp = brp
    result.bitrate = clock // _u32(brp * bit_time(result))
    result.sample_point = ((CAN_SYNC_SEG + tseg1) * 1000) // bit_time(result)
    result.tq = _u32(div_round_closest(brp * NSEC_PER_SEC, clock))
    return result


# The first entry is the default.
ALGORITHMS: tuple[Algorithm, ...] = (
    Algorithm("v6.3", calc_bittiming_v6_3, fixup_bittiming_v6_3),
    Algorithm("v5.19", calc_bittiming_v5_19, fixup_bittiming_v5_19),
    Algorithm("v5.16", calc_bittiming_v5_16, fixup_bittiming_v5_16),
    Algorithm("v4.8", calc_bittiming_v4_8, fixup_bittiming_v4_8),
    Algorithm("v3.18", calc_bittiming_v3_18, fixup_bittiming_v3_18),
    Algorithm("v2.6.31", calc_bittiming_v2_6_31, fixup_bittiming_v2_6_31),
)

DEFAULT_ALGORITHM = ALGORITHMS[0]


def find_algorithm(name: str) -> Algorithm:
    """Return the algorithm with the given name; raise KeyError if there is none."""
    for algorithm in ALGORITHMS:
        if algorithm.name == name:
            return algorithm
    raise KeyError(f"unknown CAN calc bit timing algorithm '{name}'")