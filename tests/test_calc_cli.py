import pytest

from canutils.algorithms import DEFAULT_ALGORITHM, ALGORITHMS, calc_bittiming_v6_3, fixup_bittiming_v6_3
from canutils.calc_cli import (
    CalcOptions,
    UnknownControllerError,
    calculate,
    format_bittiming,
    format_bittiming_one,
    main,
)
from canutils.controllers import SJA1000, controller_names, find_controllers, render_sja1000
from canutils.timing import BitTiming, RefClock


@pytest.fixture
def sja1000():
    return find_controllers("sja1000")[0].bittiming


def test_header_mentions_controller_clock_and_algorithm(sja1000):
    text = format_bittiming_one(
        DEFAULT_ALGORITHM, sja1000, None, RefClock(8000000), 500000, 875, SJA1000,
        False, False, False,
    )
    first = text.splitlines()[0]
    assert first == (
        "Bit timing parameters for sja1000 with 8.000000 MHz ref clock using algo 'v6.3'"
    )
    assert "BTR0 BTR1" in text


def test_fd_header_prefix_and_clock_name(sja1000):
    text = format_bittiming_one(
        DEFAULT_ALGORITHM, sja1000, None, RefClock(8000000, "board"), 500000, 875, None,
        False, False, True,
    )
    assert text.startswith("Data Bit timing parameters for sja1000")
    assert "ref clock (board) using" in text


def test_verbose_shows_limits(sja1000):
    text = format_bittiming_one(
        DEFAULT_ALGORITHM, sja1000, None, RefClock(8000000), 500000, 875, None,
        False, True, False,
    )
    assert "TSeg1: 1 …   16" in text
    assert "BRP:   1 …   64 (inc: 1)" in text


def test_exact_bitrate_row_matches_algorithm(sja1000):
    row = format_bittiming_one(
        DEFAULT_ALGORITHM, sja1000, None, RefClock(8000000), 500000, 875, SJA1000,
        True, False, False,
    )
    assert row.count("\n") == 1
    parts = row.split()
    assert parts[0] == "500000"
    assert parts[7] == parts[0]
    assert parts[8] == "0.0%"
    assert parts[9] == "87.5%"
    bt = calc_bittiming_v6_3(8000000, BitTiming(bitrate=500000, sample_point=875), sja1000)
    assert row.rstrip("\n").endswith(render_sja1000(bt))
    assert int(parts[6]) == bt.brp


def test_impossible_bitrate(sja1000):
    row = format_bittiming_one(
        DEFAULT_ALGORITHM, sja1000, None, RefClock(8000000), 1, 875, None,
        True, False, False,
    )
    assert row == f"{1:8d} ***bitrate not possible***\n"


def test_fixup_out_of_range(sja1000):
    ref = BitTiming(tq=125, prop_seg=20, phase_seg1=20, phase_seg2=2)
    row = format_bittiming_one(
        DEFAULT_ALGORITHM, sja1000, ref, RefClock(8000000), 500000, 875, None,
        True, False, False,
    )
    assert row == f"{500000:8d} ***parameters exceed controller's range***\n"


def test_fixup_row_uses_fixup_result(sja1000):
    ref = BitTiming(tq=125, prop_seg=6, phase_seg1=7, phase_seg2=2, sjw=1)
    row = format_bittiming_one(
        DEFAULT_ALGORITHM, sja1000, ref, RefClock(8000000), 500000, 875, None,
        True, False, False,
    )
    expected = fixup_bittiming_v6_3(8000000, BitTiming(**vars(ref)), sja1000)
    parts = row.split()
    assert int(parts[6]) == expected.brp
    assert int(parts[7]) == expected.bitrate


def test_format_bittiming_skips_without_clock(sja1000):
    text = format_bittiming(CalcOptions(), sja1000, (), (500000,), None, False)
    assert text == (
        "Skipping bit timing parameter calculation for sja1000, no ref clock defined\n\n"
    )


def test_format_bittiming_one_header_per_clock(sja1000):
    clocks = (RefClock(8000000), RefClock(12000000))
    text = format_bittiming(CalcOptions(), sja1000, clocks, (500000, 250000), None, False)
    assert text.count("Bit timing parameters for sja1000") == len(clocks)


def test_calculate_unknown_controller():
    with pytest.raises(UnknownControllerError) as info:
        calculate(CalcOptions(name="no-such-controller"))
    assert info.value.name == "no-such-controller"


def test_calculate_fd_controller_has_data_tables():
    text = calculate(CalcOptions(name="mcp251xfd"))
    clocks = len(find_controllers("mcp251xfd")[0].ref_clks)
    assert text.count("Bit timing parameters for mcp251xfd") == 2 * clocks
    assert text.count("Data Bit timing parameters for mcp251xfd") == clocks


def test_calculate_quiet_row_count():
    text = calculate(CalcOptions(name="mcp251x", quiet=True))
    rows = [line for line in text.splitlines() if line]
    assert len(rows) == 4 * 12


def test_calculate_with_clock_override():
    options = CalcOptions(name="sun4i_can", ref_clk=RefClock(24000000, "cmd-line"), bitrates=(500000,))
    text = calculate(options)
    assert "Skipping" not in text
    assert "(cmd-line)" in text


def test_main_list(capsys):
    assert main(["-l"]) == 0
    assert capsys.readouterr().out == "".join(f"{n}\n" for n in controller_names())


def test_main_list_algorithms(capsys):
    assert main(["--alg"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Supported CAN calc bit timing algorithms:\n\n")
    for algorithm in ALGORITHMS:
        assert f"    {algorithm.name}\n" in out


def test_main_unknown_algorithm(capsys):
    assert main(["--alg=nope", "sja1000"]) == 1
    assert "error: unknown CAN calc bit timing algorithm 'nope'" in capsys.readouterr().out


def test_main_selected_algorithm(capsys):
    assert main(["--alg=v4.8", "-c", "8000000", "-b", "500000", "sja1000"]) == 0
    assert "using algo 'v4.8'" in capsys.readouterr().out


def test_main_too_many_names(capsys):
    assert main(["sja1000", "mcp251x"]) == 1
    assert "Usage:" in capsys.readouterr().out


def test_main_unknown_controller(capsys):
    assert main(["nothing-here"]) == 1
    assert "error: unknown CAN controller 'nothing-here'" in capsys.readouterr().out


def test_main_unknown_option_prints_usage(capsys):
    assert main(["-x"]) == 0
    assert "calculate CAN bit timing parameters" in capsys.readouterr().out


def test_main_quiet_single_row(capsys):
    assert main(["-q", "-c", "8000000", "-b", "500000", "sja1000"]) == 0
    rows = [line for line in capsys.readouterr().out.splitlines() if line]
    assert len(rows) == 1
    assert rows[0].split()[0] == "500000"


def test_main_tseg1_equals_prop_and_phase(capsys):
    common = ["-q", "-c", "8000000", "-b", "500000", "--tq=125", "--phase-seg2=2", "sja1000"]
    assert main(common + ["--tseg1=13"]) == 0
    via_tseg1 = capsys.readouterr().out
    assert main(common + ["--prop-seg=6", "--phase-seg1=7"]) == 0
    assert capsys.readouterr().out == via_tseg1
    assert "***" not in via_tseg1