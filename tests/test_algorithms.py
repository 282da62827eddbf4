import errno

import pytest

from canutils.algorithms import (
    ALGORITHMS,
    DEFAULT_ALGORITHM,
    Algorithm,
    bit_time,
    calc_bittiming_v5_16,
    calc_bittiming_v5_19,
    calc_bittiming_v6_3,
    find_algorithm,
    fixup_bittiming_v5_16,
    fixup_bittiming_v5_19,
    fixup_bittiming_v6_3,
    sjw_check,
    sjw_set_default,
)
from canutils.algorithms_legacy import calc_bittiming_v4_8
from canutils.timing import BitTiming, BitTimingConst, BitTimingError

SJA1000 = BitTimingConst(
    name="sja1000",
    tseg1_min=1,
    tseg1_max=16,
    tseg2_min=1,
    tseg2_max=8,
    sjw_max=4,
    brp_min=1,
    brp_max=64,
    brp_inc=1,
)

MCP251XFD = BitTimingConst(
    name="mcp251xfd",
    tseg1_min=2,
    tseg1_max=256,
    tseg2_min=1,
    tseg2_max=128,
    sjw_max=128,
    brp_min=1,
    brp_max=256,
    brp_inc=1,
)

BITRATES = [1000000, 800000, 500000, 250000, 125000, 100000, 50000, 20000, 10000]
CALCS = [calc_bittiming_v5_16, calc_bittiming_v5_19, calc_bittiming_v6_3]


def test_sja1000_worked_example():
    bt = calc_bittiming_v6_3(8000000, BitTiming(bitrate=500000), SJA1000)
    assert bt == BitTiming(
        bitrate=500000,
        sample_point=875,
        tq=125,
        prop_seg=6,
        phase_seg1=7,
        phase_seg2=2,
        sjw=1,
        brp=1,
    )


@pytest.mark.parametrize("calc", CALCS)
@pytest.mark.parametrize("bitrate", BITRATES)
def test_calc_invariants(calc, bitrate):
    clock = 40000000
    bt = calc(clock, BitTiming(bitrate=bitrate), MCP251XFD)
    assert bt.bitrate == clock // (bt.brp * bit_time(bt))
    assert bt.tq == bt.brp * 1000000000 // clock
    assert MCP251XFD.brp_min <= bt.brp <= MCP251XFD.brp_max
    assert MCP251XFD.tseg1_min <= bt.prop_seg + bt.phase_seg1 <= MCP251XFD.tseg1_max
    assert MCP251XFD.tseg2_min <= bt.phase_seg2 <= MCP251XFD.tseg2_max
    assert 1 <= bt.sjw <= bt.phase_seg2


@pytest.mark.parametrize("bitrate", BITRATES)
def test_v6_3_segments_match_v5_19(bitrate):
    old = calc_bittiming_v5_19(40000000, BitTiming(bitrate=bitrate), MCP251XFD)
    new = calc_bittiming_v6_3(40000000, BitTiming(bitrate=bitrate), MCP251XFD)
    assert (old.brp, old.prop_seg, old.phase_seg1, old.phase_seg2) == (
        new.brp,
        new.prop_seg,
        new.phase_seg1,
        new.phase_seg2,
    )
    assert old.sample_point == new.sample_point
    assert new.sjw == max(1, min(new.phase_seg1, new.phase_seg2 // 2))


@pytest.mark.parametrize("calc", CALCS)
def test_sample_point_not_above_nominal(calc):
    bt = calc(40000000, BitTiming(bitrate=500000, sample_point=800), MCP251XFD)
    assert bt.sample_point <= 800


@pytest.mark.parametrize("calc", CALCS)
def test_input_is_not_modified(calc):
    request = BitTiming(bitrate=500000)
    calc(8000000, request, SJA1000)
    assert request == BitTiming(bitrate=500000)


def test_impossible_bitrate_v5_raises_edom():
    with pytest.raises(BitTimingError) as info:
        calc_bittiming_v5_16(8000000, BitTiming(bitrate=7), SJA1000)
    assert info.value.code == errno.EDOM


def test_impossible_bitrate_v6_3_raises_einval():
    with pytest.raises(BitTimingError) as info:
        calc_bittiming_v6_3(8000000, BitTiming(bitrate=7), SJA1000)
    assert info.value.code == errno.EINVAL


def test_v5_sjw_user_setting_limited_by_tseg2():
    bt = calc_bittiming_v5_16(8000000, BitTiming(bitrate=500000, sjw=4), SJA1000)
    assert bt.sjw == bt.phase_seg2


def test_v6_3_sjw_user_setting_too_large_raises():
    with pytest.raises(BitTimingError, match="phase-seg2"):
        calc_bittiming_v6_3(8000000, BitTiming(bitrate=500000, sjw=4), SJA1000)


@pytest.mark.parametrize(
    "calc,fixup",
    [
        (calc_bittiming_v5_16, fixup_bittiming_v5_16),
        (calc_bittiming_v5_19, fixup_bittiming_v5_19),
        (calc_bittiming_v6_3, fixup_bittiming_v6_3),
    ],
)
@pytest.mark.parametrize("bitrate", [1000000, 500000, 250000, 125000])
def test_fixup_round_trip(calc, fixup, bitrate):
    computed = calc(8000000, BitTiming(bitrate=bitrate), SJA1000)
    request = BitTiming(
        tq=computed.tq,
        prop_seg=computed.prop_seg,
        phase_seg1=computed.phase_seg1,
        phase_seg2=computed.phase_seg2,
        sjw=computed.sjw,
    )
    fixed = fixup(8000000, request, SJA1000)
    assert fixed.brp == computed.brp
    assert fixed.bitrate == computed.bitrate
    assert fixed.sample_point == computed.sample_point


def test_fixup_v6_3_defaults_sjw_and_rounds_tq():
    request = BitTiming(tq=125, prop_seg=6, phase_seg1=7, phase_seg2=2)
    fixed = fixup_bittiming_v6_3(8000000, request, SJA1000)
    assert fixed.sjw == 1
    assert fixed.tq == 125
    assert fixed.bitrate == 500000


@pytest.mark.parametrize(
    "request_bt,pattern",
    [
        (BitTiming(tq=125, prop_seg=0, phase_seg1=0, phase_seg2=2), "tseg1-min"),
        (BitTiming(tq=125, prop_seg=10, phase_seg1=10, phase_seg2=2), "tseg1-max"),
        (BitTiming(tq=125, prop_seg=6, phase_seg1=7, phase_seg2=0), "tseg2-min"),
        (BitTiming(tq=125, prop_seg=6, phase_seg1=7, phase_seg2=9), "tseg2-max"),
        (BitTiming(tq=10, prop_seg=6, phase_seg1=7, phase_seg2=2), "brp-min"),
        (BitTiming(tq=100000, prop_seg=6, phase_seg1=7, phase_seg2=2), "brp-max"),
        (BitTiming(tq=125, prop_seg=6, phase_seg1=7, phase_seg2=2, sjw=5), "max sjw"),
    ],
)
def test_fixup_v6_3_errors(request_bt, pattern):
    with pytest.raises(BitTimingError, match=pattern) as info:
        fixup_bittiming_v6_3(8000000, request_bt, SJA1000)
    assert info.value.code == errno.EINVAL


def test_fixup_v5_out_of_range_raises_erange():
    with pytest.raises(BitTimingError) as info:
        fixup_bittiming_v5_19(
            8000000, BitTiming(tq=125, prop_seg=6, phase_seg1=7, phase_seg2=9), SJA1000
        )
    assert info.value.code == errno.ERANGE


def test_sjw_set_default_keeps_given_value():
    bt = BitTiming(phase_seg1=7, phase_seg2=6, sjw=2)
    assert sjw_set_default(bt).sjw == 2


def test_sjw_set_default_uses_half_phase_seg2():
    bt = BitTiming(phase_seg1=7, phase_seg2=6)
    assert sjw_set_default(bt).sjw == 3
    assert bt.sjw == 0


def test_sjw_set_default_limited_by_phase_seg1():
    bt = BitTiming(phase_seg1=2, phase_seg2=8)
    assert sjw_set_default(bt).sjw == bt.phase_seg1


def test_sjw_check_phase_seg1():
    with pytest.raises(BitTimingError, match="phase-seg1"):
        sjw_check(BitTiming(phase_seg1=1, phase_seg2=4, sjw=2), SJA1000)


def test_sjw_check_accepts_valid():
    bt = BitTiming(phase_seg1=4, phase_seg2=4, sjw=4)
    sjw_check(bt, SJA1000)
    assert bt.sjw <= SJA1000.sjw_max


def test_bit_time_counts_sync_segment():
    bt = BitTiming(prop_seg=6, phase_seg1=7, phase_seg2=2)
    assert bit_time(bt) == 1 + 6 + 7 + 2


def test_algorithm_registry_order_and_default():
    names = ["v6.3", "v5.19", "v5.16", "v4.8", "v3.18", "v2.6.31"]
    assert [find_algorithm(name) for name in names] == list(ALGORITHMS)
    assert find_algorithm("v6.3") is DEFAULT_ALGORITHM
    bt = DEFAULT_ALGORITHM.calc(8000000, BitTiming(bitrate=500000), SJA1000)
    assert bt == calc_bittiming_v6_3(8000000, BitTiming(bitrate=500000), SJA1000)


@pytest.mark.parametrize("name", ["v6.3", "v5.19", "v5.16", "v4.8", "v3.18", "v2.6.31"])
def test_find_algorithm(name):
    algorithm = find_algorithm(name)
    assert isinstance(algorithm, Algorithm) and algorithm.name == name
    bt = algorithm.calc(8000000, BitTiming(bitrate=500000), SJA1000)
    assert bt.bitrate == 500000


def test_find_algorithm_unknown():
    with pytest.raises(KeyError):
        find_algorithm("v1.0")