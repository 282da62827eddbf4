"""Command line tool that calculates and decodes CAN bit-timing parameters."""

from __future__ import annotations

import getopt
import re
import sys
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from canutils.algorithms import ALGORITHMS, DEFAULT_ALGORITHM, Algorithm, find_algorithm
from canutils.controllers import NO_REGISTERS, RegisterFormat, controller_names, find_controllers
from canutils.timing import BitTiming, BitTimingConst, BitTimingError, RefClock, cia_sample_point

PROG = "can-calc-bit-timing"

COMMON_BITRATES: tuple[int, ...] = (
    1000000,
    800000,
    666666,
    500000,
    250000,
    125000,
    100000,
    83333,
    50000,
    33333,
    20000,
    10000,
)

COMMON_DATA_BITRATES: tuple[int, ...] = (
    12000000,
    10000000,
    8000000,
    5000000,
    4000000,
    2000000,
    1000000,
)

_LIST_ALGORITHMS = "list-algorithms"
_LONG_OPTIONS = [
    "tq=",
    "prop-seg=",
    "phase-seg1=",
    "phase-seg2=",
    "sjw=",
    "brp=",
    "tseg1=",
    "tseg2=",
    "alg=",
    _LIST_ALGORITHMS,
]
_NUMBER = re.compile(r"\s*([+-]?)(\d*)")


@dataclass
class CalcOptions:
    """What to calculate: controller, algorithm and optional command-line overrides."""

    name: str | None = None
    algorithm: Algorithm = DEFAULT_ALGORITHM
    sample_point: int = 0
    ref_clk: RefClock | None = None
    bitrates: tuple[int, ...] = ()
    data_bitrates: tuple[int, ...] = ()
    bt: BitTiming | None = None
    quiet: bool = False
    verbose: bool = False


class UnknownControllerError(LookupError):
    """Raised when no known controller has the requested name."""

    def __init__(self, name: str | None) -> None:
        super().__init__(f"unknown CAN controller '{name}'")
        self.name = name


def _percent(error: int, nominal: int, trailer: str) -> str:
    value = 100.0 * error / nominal
    if value > 99.9:
        return "≥100%" + trailer
    return f"{value:4.1f}%" + trailer


def _header(
    algorithm: Algorithm,
    btc: BitTimingConst,
    ref_clk: RefClock,
    register_format: RegisterFormat,
    verbose: bool,
    fd_mode: bool,
) -> str:
    open_, label, close = ("(", ref_clk.name, ") ") if ref_clk.name else ("", "", "")
    lines = [
        f"{'Data ' if fd_mode else ''}Bit timing parameters for {btc.name} with "
        f"{ref_clk.clk / 1000000.0:.6f} MHz ref clock {open_}{label}{close}"
        f"using algo '{algorithm.name}'\n"
    ]
    if verbose:
        lines.append(
            f"                    _----+--------------=> TSeg1: {btc.tseg1_min} … {btc.tseg1_max:4d}\n"
            f"                   /    /     _---------=> TSeg2: {btc.tseg2_min} … {btc.tseg2_max:4d}\n"
            f"                  |    |     /    _-----=> SJW:   {1} … {btc.sjw_max:4d}\n"
            f"                  |    |    |    /    _-=> BRP:   {btc.brp_min} … {btc.brp_max:4d}"
            f" (inc: {btc.brp_inc})\n"
            "                  |    |    |   |    /\n"
        )
        lines.append(" nominal          |    |    |   |   |     real  Bitrt    nom   real   SampP\n")
    else:
        lines.append(" nominal                                  real  Bitrt    nom   real   SampP\n")
    lines.append(
        " Bitrate TQ[ns] PrS PhS1 PhS2 SJW BRP  Bitrate  Error  SampP  SampP   Error  "
        + register_format.header
        + "\n"
    )
    return "".join(lines)


def format_bittiming_one(
    algorithm: Algorithm,
    btc: BitTimingConst,
    ref_bt: BitTiming | None,
    ref_clk: RefClock,
    bitrate_nominal: int,
    sample_point_nominal: int,
    register_format: RegisterFormat | None,
    quiet: bool,
    verbose: bool,
    fd_mode: bool,
) -> str:
    """Return the (optional) header and the result row for one bitrate and clock."""
    register_format = register_format or NO_REGISTERS
    out = ""
    if not quiet:
        out += _header(algorithm, btc, ref_clk, register_format, verbose, fd_mode)

    try:
        if ref_bt is not None:
            try:
                bt = algorithm.fixup(ref_clk.clk, replace(ref_bt), btc)
            except BitTimingError:
                return out + f"{bitrate_nominal:8d} ***parameters exceed controller's range***\n"
        else:
            bt = algorithm.calc(
                ref_clk.clk,
                BitTiming(bitrate=bitrate_nominal, sample_point=sample_point_nominal),
                btc,
            )
    except BitTimingError:
        return out + f"{bitrate_nominal:8d} ***bitrate not possible***\n"

    bitrate_error = abs(bitrate_nominal - bt.bitrate)
    sample_point_error = abs(sample_point_nominal - bt.sample_point)

    out += (
        f"{bitrate_nominal:8d} "
        f"{bt.tq:6d} {bt.prop_seg:3d} {bt.phase_seg1:4d} {bt.phase_seg2:4d} "
        f"{bt.sjw:3d} {bt.brp:3d} "
        f"{bt.bitrate:8d}  "
    )
    out += _percent(bitrate_error, bitrate_nominal, "  ")
    out += f"{sample_point_nominal / 10.0:4.1f}%  {bt.sample_point / 10.0:4.1f}%  "
    out += _percent(sample_point_error, sample_point_nominal, "   ")
    out += register_format.render(bt) + "\n"
    return out


def format_bittiming(
    options: CalcOptions,
    btc: BitTimingConst,
    ref_clks: Sequence[RefClock],
    bitrates: Iterable[int],
    register_format: RegisterFormat | None,
    fd_mode: bool,
) -> str:
    """Return the result table of every bitrate for every reference clock."""
    bitrates = tuple(bitrates)
    clocks = [clk for clk in ref_clks if clk.clk]
    parts: list[str] = []
    if not clocks and not options.quiet:
        parts.append(
            f"Skipping bit timing parameter calculation for {btc.name}, no ref clock defined\n\n"
        )
    for ref_clk in clocks:
        quiet = options.quiet
        for bitrate in bitrates:
            sample_point = options.sample_point or cia_sample_point(bitrate)
            parts.append(
                format_bittiming_one(
                    options.algorithm,
                    btc,
                    options.bt,
                    ref_clk,
                    bitrate,
                    sample_point,
                    register_format,
                    quiet,
                    options.verbose,
                    fd_mode,
                )
            )
            quiet = True
        parts.append("\n")
    return "".join(parts)


def calculate(options: CalcOptions) -> str:
    """Return the tables for all matching controllers; raise UnknownControllerError if none match."""
    controllers = find_controllers(options.name)
    if not controllers:
        raise UnknownControllerError(options.name)

    parts: list[str] = []
    for controller in controllers:
        ref_clks = (options.ref_clk,) if options.ref_clk else controller.ref_clks
        register_format = controller.register_format or NO_REGISTERS

        parts.append(
            format_bittiming(
                options,
                controller.bittiming,
                ref_clks,
                options.bitrates or COMMON_BITRATES,
                register_format,
                False,
            )
        )

        if controller.data_bittiming is not None:
            data_format = controller.data_register_format or register_format
            bitrates = options.data_bitrates or options.bitrates or COMMON_DATA_BITRATES
            parts.append(
                format_bittiming(
                    options, controller.data_bittiming, ref_clks, bitrates, data_format, True
                )
            )
    return "".join(parts)


def _usage(prog: str) -> str:
    return (
        f"{prog} - calculate CAN bit timing parameters.\n"
        f"Usage: {prog} [options] [<CAN-contoller-name>]\n"
        "Options:\n"
        "\t-q             don't print header line\n"
        "\t-v             verbose output, print bit timing const\n"
        "\t-l             list all support CAN controller names\n"
        "\t-b <bitrate>   arbitration bit-rate in bits/sec\n"
        "\t-d <bitrate>   data bit-rate in bits/sec\n"
        "\t-s <samp_pt>   sample-point in one-tenth of a percent\n"
        "\t               or 0 for CIA recommended sample points\n"
        "\t-c <clock>     real CAN system clock in Hz\n"
        "\t--alg <alg>    choose specified algorithm for bit-timing calculation\n"
        "\n"
        "Or supply low level bit timing parameters to decode them:\n"
        "\n"
        "\t--tq           Time quantum in ns\n"
        "\t--prop-seg     Propagation segment in TQs\n"
        "\t--phase-seg1   Phase buffer segment 1 in TQs\n"
        "\t--phase-seg2   Phase buffer segment 2 in TQs\n"
        "\t--sjw          Synchronisation jump width in TQs\n"
        "\t--brp          Bit-rate prescaler\n"
        "\t--tseg1        Time segment 1 = prop-seg + phase-seg1\n"
        "\t--tseg2        Time segment 2 = phase_seg2\n"
    )


def _algorithm_list() -> str:
    return "".join(f"    {algorithm.name}\n" for algorithm in ALGORITHMS)


def _number(text: str) -> int:
    """Parse a leading decimal number the lenient way; no digits gives 0."""
    match = _NUMBER.match(text)
    sign, digits = match.groups()
    value = int(digits) if digits else 0
    return (-value if sign == "-" else value) & 0xFFFFFFFF


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line tool; return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    args = [f"--{_LIST_ALGORITHMS}" if arg == "--alg" else arg for arg in args]
    out = sys.stdout

    try:
        opts, positional = getopt.gnu_getopt(args, "b:c:d:lqs:v?", _LONG_OPTIONS)
    except getopt.GetoptError as exc:
        sys.stderr.write(f"{PROG}: {exc}\n")
        out.write(_usage(PROG))
        return 0

    options = CalcOptions()
    ref_clk = 0
    bitrate = 0
    data_bitrate = 0
    bt = BitTiming()
    alg_name: str | None = None
    list_controllers = False

    for opt, value in opts:
        if opt == "-b":
            bitrate = _number(value)
        elif opt == "-c":
            ref_clk = _number(value)
        elif opt == "-d":
            data_bitrate = _number(value)
        elif opt == "-l":
            list_controllers = True
        elif opt == "-q":
            options.quiet = True
        elif opt == "-s":
            options.sample_point = _number(value)
        elif opt == "-v":
            options.verbose = True
        elif opt == "-?":
            out.write(_usage(PROG))
            return 0
        elif opt == "--tq":
            bt.tq = _number(value)
        elif opt == "--prop-seg":
            bt.prop_seg = _number(value)
        elif opt == "--phase-seg1":
            bt.phase_seg1 = _number(value)
        elif opt in ("--phase-seg2", "--tseg2"):
            bt.phase_seg2 = _number(value)
        elif opt == "--sjw":
            bt.sjw = _number(value)
        elif opt == "--brp":
            bt.brp = _number(value)
        elif opt == "--tseg1":
            tseg1 = _number(value)
            bt.prop_seg = tseg1 // 2
            bt.phase_seg1 = tseg1 - bt.prop_seg
        elif opt == f"--{_LIST_ALGORITHMS}":
            out.write("Supported CAN calc bit timing algorithms:\n\n")
            out.write(_algorithm_list())
            out.write("\n")
            return 0
        elif opt == "--alg":
            alg_name = value

    if len(positional) > 1:
        out.write(_usage(PROG))
        return 1
    if positional:
        options.name = positional[0]

    if list_controllers:
        out.write("".join(f"{name}\n" for name in controller_names()))
        return 0

    if options.sample_point and not 100 <= options.sample_point < 1000:
        out.write(_usage(PROG))

    if alg_name is not None:
        try:
            options.algorithm = find_algorithm(alg_name)
        except KeyError:
            out.write(
                f"error: unknown CAN calc bit timing algorithm '{alg_name}', "
                "try one of these:\n\n"
            )
            out.write(_algorithm_list())
            return 1

    if ref_clk:
        options.ref_clk = RefClock(ref_clk, "cmd-line")
    if bitrate:
        options.bitrates = (bitrate,)
    if data_bitrate:
        options.data_bitrates = (data_bitrate,)
    if bt.prop_seg:
        options.bt = bt

    try:
        out.write(calculate(options))
    except UnknownControllerError as exc:
        out.write(f"error: unknown CAN controller '{exc.name}', try one of these:\n\n")
        out.write("".join(f"{name}\n" for name in controller_names()))
        return 1
    return 0