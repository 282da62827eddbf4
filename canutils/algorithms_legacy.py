"""Bit-timing calculation as done by the v2.6.31, v3.18 and v4.8 kernels."""

from __future__ import annotations

import errno
from dataclasses import replace

from canutils.timing import (
    CAN_CALC_MAX_ERROR,
    CAN_SYNC_SEG,
    NSEC_PER_SEC,
    UINT_MAX,
    BitTiming,
    BitTimingConst,
    BitTimingError,
    cia_sample_point,
    clamp,
)


def _u32(value: int) -> int:
    return value & UINT_MAX


def _cdiv(a: int, b: int) -> int:
    """Signed division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _abs32(value: int) -> int:
    """Absolute value of a 32-bit quantity read as a signed int."""
    value &= UINT_MAX
    if value >= 0x80000000:
        value -= 1 << 32
    return abs(value)


def _nominal_sample_point(bt: BitTiming) -> int:
    return bt.sample_point or cia_sample_point(bt.bitrate)


def _tseg_range(btc: BitTimingConst) -> range:
    # tseg even = round down, odd = round up
    return range(
        (btc.tseg1_max + btc.tseg2_max) * 2 + 1,
        (btc.tseg1_min + btc.tseg2_min) * 2 - 1,
        -1,
    )


def _raise_if_too_high(error: int) -> None:
    if error > CAN_CALC_MAX_ERROR:
        raise BitTimingError(
            f"bitrate error {error // 10}.{error % 10}% too high", errno.EDOM
        )


def _limit_sjw(sjw: int, sjw_max: int, tseg2: int) -> int:
    if not sjw or not sjw_max:
        return 1
    sjw = min(sjw, sjw_max)
    return min(sjw, tseg2)


def _update_spt(
    btc: BitTimingConst, sampl_pt: int, tseg: int
) -> tuple[int, int, int]:
    tseg2 = tseg + 1 - _cdiv(sampl_pt * (tseg + 1), 1000)
    tseg2 = clamp(tseg2, btc.tseg2_min, btc.tseg2_max)
    tseg1 = tseg - tseg2
    if tseg1 > btc.tseg1_max:
        tseg1 = btc.tseg1_max
        tseg2 = tseg - tseg1
    return _cdiv(1000 * (tseg + 1 - tseg2), tseg + 1), tseg1, tseg2


def _calc_spt(
    clock: int, bt: BitTiming, btc: BitTimingConst, honour_sjw: bool
) -> BitTiming:
    sampl_pt = _nominal_sample_point(bt)
    bitrate = bt.bitrate
    best_error = 1_000_000_000
    spt_error = 1000
    best_tseg = best_brp = 0

    for tseg in _tseg_range(btc):
        tsegall = 1 + tseg // 2
        brp = clock // _u32(tsegall * bitrate) + tseg % 2
        brp = (brp // btc.brp_inc) * btc.brp_inc
        if brp < btc.brp_min or brp > btc.brp_max:
            continue
        rate = clock // _u32(brp * tsegall)
        error = abs(bitrate - rate)
        if error > best_error:
            continue
        best_error = error
        if error == 0:
            spt, _, _ = _update_spt(btc, sampl_pt, tseg // 2)
            error = abs(sampl_pt - spt)
            if error > spt_error:
                continue
            spt_error = error
        best_tseg = tseg // 2
        best_brp = brp
        if error == 0:
            break

    if best_error:
        _raise_if_too_high((best_error * 1000) // bitrate)

    sample_point, tseg1, tseg2 = _update_spt(btc, sampl_pt, best_tseg)
    prop_seg = _cdiv(tseg1, 2)
    sjw = _limit_sjw(bt.sjw, btc.sjw_max, tseg2) if honour_sjw else 1

    return replace(
        bt,
        sample_point=_u32(sample_point),
        tq=_u32(best_brp * NSEC_PER_SEC // clock),
        prop_seg=prop_seg,
        phase_seg1=tseg1 - prop_seg,
        phase_seg2=tseg2,
        sjw=sjw,
        brp=best_brp,
        bitrate=clock // _u32(best_brp * (tseg1 + tseg2 + 1)),
    )


def _fixup(clock: int, bt: BitTiming, btc: BitTimingConst) -> BitTiming:
    tseg1 = bt.prop_seg + bt.phase_seg1
    sjw = bt.sjw or 1
    if (
        sjw > btc.sjw_max
        or tseg1 < btc.tseg1_min
        or tseg1 > btc.tseg1_max
        or bt.phase_seg2 < btc.tseg2_min
        or bt.phase_seg2 > btc.tseg2_max
    ):
        raise BitTimingError(
            "bit-timing parameters exceed the controller's range", errno.ERANGE
        )

    brp64 = clock * bt.tq
    if btc.brp_inc > 1:
        brp64 //= btc.brp_inc
    brp64 = (brp64 + 500_000_000 - 1) // NSEC_PER_SEC  # the practicable BRP
    if btc.brp_inc > 1:
        brp64 *= btc.brp_inc
    brp = _u32(brp64)

    if brp < btc.brp_min or brp > btc.brp_max:
        raise BitTimingError(f"resulting brp {brp} out of range", errno.EINVAL)

    alltseg = bt.prop_seg + bt.phase_seg1 + bt.phase_seg2 + 1
    return replace(
        bt,
        sjw=sjw,
        brp=brp,
        bitrate=clock // _u32(brp * alltseg),
        sample_point=((tseg1 + 1) * 1000) // alltseg,
    )


def _update_sample_point(
    btc: BitTimingConst,
    sample_point_nominal: int,
    tseg: int,
    tseg1_in: int,
    tseg2_in: int,
) -> tuple[int, int, int, int]:
    """Return (sample point, its error, tseg1, tseg2); tsegs stay as given if none fits."""
    best_error = UINT_MAX
    best_sample_point = 0
    out_tseg1, out_tseg2 = tseg1_in, tseg2_in

    for i in (0, 1):
        tseg2 = _u32(
            tseg
            + CAN_SYNC_SEG
            - _u32(sample_point_nominal * (tseg + CAN_SYNC_SEG)) // 1000
            - i
        )
        tseg2 = clamp(tseg2, btc.tseg2_min, btc.tseg2_max)
        tseg1 = _u32(tseg - tseg2)
        if tseg1 > btc.tseg1_max:
            tseg1 = btc.tseg1_max
            tseg2 = _u32(tseg - tseg1)

        sample_point = _u32(1000 * _u32(tseg + CAN_SYNC_SEG - tseg2)) // (
            tseg + CAN_SYNC_SEG
        )
        error = _abs32(sample_point_nominal - sample_point)

        if sample_point <= sample_point_nominal and error < best_error:
            best_sample_point = sample_point
            best_error = error
            out_tseg1, out_tseg2 = tseg1, tseg2

    return best_sample_point, best_error, out_tseg1, out_tseg2


def calc_bittiming_v2_6_31(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Calculate bit-timing for bt.bitrate; sjw is always 1."""
    return _calc_spt(clock, bt, btc, honour_sjw=False)


def fixup_bittiming_v2_6_31(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Validate given segments and derive brp, bitrate and sample point."""
    return _fixup(clock, bt, btc)


def calc_bittiming_v3_18(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Calculate bit-timing for bt.bitrate, honouring a requested sjw."""
    return _calc_spt(clock, bt, btc, honour_sjw=True)


def fixup_bittiming_v3_18(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Validate given segments and derive brp, bitrate and sample point."""
    return _fixup(clock, bt, btc)


def calc_bittiming_v4_8(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Calculate bit-timing keeping the sample point at or below the nominal one."""
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
        if sample_point_error > best_sample_point_error:
            continue

        best_sample_point_error = sample_point_error
        best_bitrate_error = bitrate_error
        best_tseg = tseg // 2
        best_brp = brp

        if bitrate_error == 0 and sample_point_error == 0:
            break

    if best_bitrate_error:
        _raise_if_too_high(_u32(best_bitrate_error * 1000 // bitrate_nominal))

    sample_point, _, tseg1, tseg2 = _update_sample_point(
        btc, sample_point_nominal, best_tseg, tseg1, tseg2
    )
    prop_seg = tseg1 // 2

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


def fixup_bittiming_v4_8(
    clock: int, bt: BitTiming, btc: BitTimingConst
) -> BitTiming:
    """Validate given segments and derive brp, bitrate and sample point."""
    return _fixup(clock, bt, btc)