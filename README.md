# canutils

Calculate CAN and CAN FD bit timing parameters for many CAN controllers,
using several generations of the bit timing search algorithm, and decode
given low-level timing parameters into bitrate and sample point.

## Installation

```
pip install .
```

## Command line

The `can-calc-bit-timing` command prints timing tables: for each reference
clock and bitrate a row with time quantum, segments, SJW, prescaler, the real
bitrate and sample point with their errors and, for controllers with a known
register layout, the register values.

List the supported controllers:

```
can-calc-bit-timing -l
```

Calculate the tables for one controller at its known reference clocks and
the common bitrates (without a name, every controller is shown):

```
can-calc-bit-timing mcp251x
```

Choose a bitrate, clock and sample point (in tenths of a percent, `0` for
the CiA recommended sample points):

```
can-calc-bit-timing -b 500000 -c 8000000 -s 875 sja1000
```

For CAN FD controllers, `-d` sets the data-phase bitrate; without it the
`-b` bitrate, or else a set of common data bitrates, is used. `-q` leaves out
the header lines and `-v` adds the controller's timing limits to the header.
`-?` prints the usage text.

List the available algorithms, or pick one of them (the name must follow
`--alg=`; the default is `v6.3`):

```
can-calc-bit-timing --alg
can-calc-bit-timing --alg=v4.8 flexcan
```

Available algorithms: `v6.3`, `v5.19`, `v5.16`, `v4.8`, `v3.18`, `v2.6.31`.

Decode low-level parameters instead of searching for them (this happens
whenever a non-zero `--prop-seg` or `--tseg1` is given):

```
can-calc-bit-timing -c 24000000 --tq 125 --prop-seg 6 --phase-seg1 7 --phase-seg2 2 --sjw 1 flexcan
```

`--tseg1` (split into propagation and phase segment 1) and `--tseg2` are
accepted as alternatives to the individual segments; `--brp` is also
accepted.

## Library

```python
from canutils.timing import BitTiming, cia_sample_point
from canutils.algorithms import calc_bittiming_v6_3
from canutils.controllers import find_controllers

controller = find_controllers("sja1000")[0]
bt = BitTiming(bitrate=500000, sample_point=cia_sample_point(500000))
result = calc_bittiming_v6_3(8000000, bt, controller.bittiming)
print(result.brp, result.tq, result.sample_point)
```

- `canutils.timing`: the `BitTiming`, `BitTimingConst` and `RefClock` data
  classes, `BitTimingError`, and the helpers `clamp`, `div_round_closest` and
  `cia_sample_point`.
- `canutils.algorithms` and `canutils.algorithms_legacy`: the
  `calc_bittiming_*` and `fixup_bittiming_*` functions for each algorithm
  version; `ALGORITHMS`, `Algorithm` and `find_algorithm(name)` (which raises
  `KeyError` for an unknown name). The functions return a new `BitTiming`.
- `canutils.controllers`: the `CONTROLLERS` table, `Controller`,
  `controller_names()`, `find_controllers(name)` and the `render_*` functions
  that produce register values for controllers with a known layout.
- `canutils.calc_cli`: `CalcOptions`, `calculate(options)` returning the
  table text (raising `UnknownControllerError` for an unknown name),
  `format_bittiming`, `format_bittiming_one` and `main(argv=None)`.
- `canutils.terminal`: ANSI escape sequence constants for colours,
  attributes, cursor movement and clearing the screen.

When a bitrate cannot be reached, or the parameters fall outside what the
controller supports, a `BitTimingError` is raised.

## What it does not do

The package only does arithmetic on timing parameters. It does not open
CAN interfaces, configure a controller, or send, receive, dump or log
CAN frames.