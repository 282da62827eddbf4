"""Known CAN controllers: their bit-timing limits, reference clocks and register layouts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from canutils.timing import BitTiming, BitTimingConst, RefClock

_U32 = 0xFFFFFFFF
_U8 = 0xFF


def _m1(value: int) -> int:
    """value - 1 as an unsigned 32-bit quantity."""
    return (value - 1) & _U32


@dataclass(frozen=True)
class RegisterFormat:
    """How a controller's bit-timing register values are shown: a header and a renderer."""

    header: str
    render: Callable[[BitTiming], str]


def _render_nothing(bt: BitTiming) -> str:
    return ""


NO_REGISTERS = RegisterFormat("", _render_nothing)


def render_rcar_can(bt: BitTiming) -> str:
    """Render the R-Car CAN CiBCR register."""
    bcr = (
        ((_m1(bt.phase_seg1 + bt.prop_seg) & 0x0F) << 20)
        | ((_m1(bt.brp) & 0x3FF) << 8)
        | ((_m1(bt.sjw) & 0x3) << 4)
        | (_m1(bt.phase_seg2) & 0x07)
    )
    return f"0x{(bcr << 8) & _U32:08x}"


def render_mcp251x(bt: BitTiming) -> str:
    """Render the MCP251x CNF1, CNF2 and CNF3 registers."""
    cnf1 = ((_m1(bt.sjw) << 6) | _m1(bt.brp)) & _U8
    cnf2 = (0x80 | (_m1(bt.phase_seg1) << 3) | _m1(bt.prop_seg)) & _U8
    cnf3 = _m1(bt.phase_seg2) & _U8
    return f"0x{cnf1:02x} 0x{cnf2:02x} 0x{cnf3:02x}"


def render_mcp251xfd(bt: BitTiming) -> str:
    """Render the MCP251xFD NBTCFG register."""
    nbtcfg = (
        (_m1(bt.brp) << 24)
        | (_m1(bt.prop_seg + bt.phase_seg1) << 16)
        | (_m1(bt.phase_seg2) << 8)
        | _m1(bt.sjw)
    ) & _U32
    return f"0x{nbtcfg:08x}"


def render_bxcan(bt: BitTiming) -> str:
    """Render the bxCAN CAN_BTR register."""
    btr = (
        (_m1(bt.brp) & 0x3FF)
        | ((_m1(bt.prop_seg + bt.phase_seg1) & 0xF) << 16)
        | ((_m1(bt.phase_seg2) & 0x7) << 20)
        | ((_m1(bt.sjw) & 0x3) << 24)
    )
    return f"0x{btr:08x}"


def render_at91(bt: BitTiming) -> str:
    """Render the AT91 CAN_BR register."""
    br = (
        _m1(bt.phase_seg2)
        | (_m1(bt.phase_seg1) << 4)
        | (_m1(bt.prop_seg) << 8)
        | (_m1(bt.sjw) << 12)
        | (_m1(bt.brp) << 16)
    ) & _U32
    return f"0x{br:08x}"


def render_c_can(bt: BitTiming) -> str:
    """Render the C_CAN BTR and BRPEXT registers."""
    btr = (
        (_m1(bt.brp) & 0x3F)
        | ((_m1(bt.sjw) & 0x3) << 6)
        | ((_m1(bt.prop_seg + bt.phase_seg1) & 0xF) << 8)
        | ((_m1(bt.phase_seg2) & 0x7) << 12)
    )
    brpext = (_m1(bt.brp) >> 6) & 0xF
    return f"0x{btr:04x} 0x{brpext:04x}"


def render_flexcan(bt: BitTiming) -> str:
    """Render the FlexCAN CAN_CTRL register."""
    ctrl = (
        (_m1(bt.brp) << 24)
        | (_m1(bt.sjw) << 22)
        | (_m1(bt.phase_seg1) << 19)
        | (_m1(bt.phase_seg2) << 16)
        | _m1(bt.prop_seg)
    ) & _U32
    return f"0x{ctrl:08x}"


def render_mcan(bt: BitTiming) -> str:
    """Render the M_CAN NBTP register."""
    nbtp = (
        ((_m1(bt.brp) & 0x1FF) << 16)
        | ((_m1(bt.sjw) & 0x7F) << 25)
        | ((_m1(bt.prop_seg + bt.phase_seg1) & 0xFF) << 8)
        | (_m1(bt.phase_seg2) & 0x7F)
    ) & _U32
    return f"0x{nbtp:08x}"


def render_sja1000(bt: BitTiming) -> str:
    """Render the SJA1000 BTR0 and BTR1 registers."""
    btr0 = (_m1(bt.brp) & 0x3F) | ((_m1(bt.sjw) & 0x3) << 6)
    btr1 = (_m1(bt.prop_seg + bt.phase_seg1) & 0xF) | ((_m1(bt.phase_seg2) & 0x7) << 4)
    return f"0x{btr0:02x} 0x{btr1:02x}"


def render_ti_hecc(bt: BitTiming) -> str:
    """Render the TI HECC CANBTC register."""
    can_btc = _m1(bt.phase_seg2) & 0x7
    can_btc |= (_m1(bt.phase_seg1 + bt.prop_seg) & 0xF) << 3
    can_btc |= (_m1(bt.sjw) & 0x3) << 8
    can_btc |= (_m1(bt.brp) & 0xFF) << 16
    return f"0x{can_btc:08x}"


RCAR_CAN = RegisterFormat(f"{'CiBCR':>10}", render_rcar_can)
MCP251X = RegisterFormat("CNF1 CNF2 CNF3", render_mcp251x)
MCP251XFD = RegisterFormat(f"{'NBTCFG':>10}", render_mcp251xfd)
BXCAN = RegisterFormat(f"{'CAN_BTR':>10}", render_bxcan)
AT91 = RegisterFormat(f"{'CAN_BR':>10}", render_at91)
C_CAN = RegisterFormat(f"{'BTR BRPEXT':>13}", render_c_can)
FLEXCAN = RegisterFormat(f"{'CAN_CTRL':>10}", render_flexcan)
MCAN = RegisterFormat(f"{'NBTP':>10}", render_mcan)
SJA1000 = RegisterFormat(f"{'BTR0 BTR1':>9}", render_sja1000)
TI_HECC = RegisterFormat(f"{'CANBTC':>10}", render_ti_hecc)


@dataclass(frozen=True)
class Controller:
    """A CAN controller with nominal (and optionally data phase) bit-timing limits."""

    bittiming: BitTimingConst
    data_bittiming: BitTimingConst | None = None
    ref_clks: tuple[RefClock, ...] = ()
    register_format: RegisterFormat | None = None
    data_register_format: RegisterFormat | None = None

    @property
    def name(self) -> str:
        """The controller's name."""
        return self.bittiming.name

    def matches(self, name: str) -> bool:
        """Whether name is the name of the nominal or the data bit-timing limits."""
        if name == self.bittiming.name:
            return True
        return self.data_bittiming is not None and name == self.data_bittiming.name


def _btc(name, tseg1_min, tseg1_max, tseg2_min, tseg2_max, sjw_max, brp_min, brp_max, brp_inc=1):
    return BitTimingConst(
        name, tseg1_min, tseg1_max, tseg2_min, tseg2_max, sjw_max, brp_min, brp_max, brp_inc
    )


_CIA = (RefClock(20000000, "CIA recommendation"), RefClock(40000000, "CIA recommendation"))

CONTROLLERS: tuple[Controller, ...] = (
    Controller(
        _btc("rcar_can", 4, 16, 2, 8, 4, 1, 1024),
        ref_clks=(RefClock(65000000),),
        register_format=RCAR_CAN,
    ),
    Controller(
        _btc("rcar_canfd", 2, 128, 2, 32, 32, 1, 1024),
        _btc("rcar_canfd", 2, 16, 2, 8, 8, 1, 256),
        ref_clks=_CIA,
    ),
    Controller(_btc("rcar_canfd (CC)", 4, 16, 2, 8, 4, 1, 1024)),
    Controller(
        _btc("rockchip_canfd", 1, 256, 1, 128, 128, 2, 256, 2),
        _btc("rockchip_canfd", 1, 32, 1, 16, 16, 2, 256, 2),
        ref_clks=_CIA + (RefClock(300000000, "rock-3a"),),
    ),
    # SPI
    Controller(_btc("hi311x", 2, 16, 2, 8, 4, 1, 64), ref_clks=(RefClock(24000000),)),
    Controller(
        _btc("mcp251x", 3, 16, 2, 8, 4, 1, 64),
        # the mcp251x uses half of the external OSC clock as the base clock
        ref_clks=(
            RefClock(8000000 // 2, "8 MHz OSC"),
            RefClock(12000000 // 2, "12 MHz OSC"),
            RefClock(16000000 // 2, "16 MHz OSC"),
            RefClock(20000000 // 2, "20 MHz OSC"),
        ),
        register_format=MCP251X,
    ),
    Controller(
        _btc("mcp251xfd", 2, 256, 1, 128, 128, 1, 256),
        _btc("mcp251xfd", 1, 32, 1, 16, 16, 1, 256),
        ref_clks=_CIA,
        register_format=MCP251XFD,
    ),
    # USB
    Controller(_btc("usb_8dev", 1, 16, 1, 8, 4, 1, 1024), ref_clks=(RefClock(32000000),)),
    Controller(_btc("ems_usb", 1, 16, 1, 8, 4, 1, 64), ref_clks=(RefClock(8000000),)),
    Controller(
        _btc("esd_usb2", 1, 16, 1, 8, 4, 1, 1024),
        ref_clks=(RefClock(60000000, "CAN-USB/2"), RefClock(36000000, "CAN-USB/Micro")),
    ),
    Controller(
        _btc("bxcan", 1, 16, 1, 8, 4, 1, 1024),
        ref_clks=(RefClock(48000000),),
        register_format=BXCAN,
    ),
    Controller(
        _btc("CANtact Pro", 1, 16, 1, 8, 4, 1, 1024),
        _btc("CANtact Pro", 1, 16, 1, 8, 4, 1, 1024),
        ref_clks=(
            RefClock(24000000, "CANtact Pro (original)"),
            RefClock(40000000, "CIA recommendation"),
        ),
    ),
    Controller(_btc("kvaser_usb", 1, 16, 1, 8, 4, 1, 64), ref_clks=(RefClock(8000000),)),
    Controller(
        _btc("kvaser_usb_kcan", 1, 255, 1, 32, 16, 1, 8192),
        _btc("kvaser_usb_kcan", 1, 255, 1, 32, 16, 1, 8192),
        ref_clks=(RefClock(80000000),),
    ),
    Controller(
        _btc("kvaser_usb_flex", 4, 16, 2, 8, 4, 1, 256), ref_clks=(RefClock(24000000),)
    ),
    Controller(_btc("pcan_usb_pro", 1, 16, 1, 8, 4, 1, 1024), ref_clks=(RefClock(56000000),)),
    Controller(
        _btc("pcan_usb_fd", 1, 1 << 8, 1, 1 << 7, 1 << 7, 1, 1 << 10),
        _btc("pcan_usb_fd", 1, 1 << 5, 1, 1 << 4, 1 << 4, 1, 1 << 10),
        ref_clks=(RefClock(80000000),),
    ),
    Controller(
        _btc("softing", 1, 16, 1, 8, 4, 1, 32),
        ref_clks=(RefClock(8000000), RefClock(16000000)),
    ),
    Controller(
        _btc("at91", 4, 16, 2, 8, 4, 2, 128),
        ref_clks=(
            RefClock(66000000, "sama5d3"),
            RefClock(99532800, "ronetix PM9263"),
            RefClock(100000000),
        ),
        register_format=AT91,
    ),
    Controller(_btc("cc770", 1, 16, 1, 8, 4, 1, 64), ref_clks=(RefClock(8000000),)),
    Controller(
        _btc("c_can", 2, 16, 1, 8, 4, 1, 1024),
        ref_clks=(RefClock(24000000),),
        register_format=C_CAN,
    ),
    Controller(
        _btc("flexcan", 4, 16, 2, 8, 4, 1, 256),
        ref_clks=(
            RefClock(24000000, "mx28"),
            RefClock(30000000, "mx6"),
            RefClock(49875000),
            RefClock(66000000),
            RefClock(66500000, "mx25"),
            RefClock(66666666),
            RefClock(83368421, "vybrid"),
        ),
        register_format=FLEXCAN,
    ),
    Controller(
        _btc("flexcan-fd", 2, 96, 2, 32, 16, 1, 1024),
        _btc("flexcan-fd", 2, 39, 2, 8, 4, 1, 1024),
        ref_clks=_CIA,
    ),
    Controller(_btc("grcan", 1 + 1, 15 + 1, 2, 8, 4, 0 + 1, 255 + 1)),
    Controller(
        _btc("ifi_canfd", 1, 256, 2, 256, 128, 2, 512),
        _btc("ifi_canfd", 1, 256, 2, 256, 128, 2, 512),
        ref_clks=_CIA,
    ),
    Controller(_btc("janz-ican3", 1, 16, 1, 8, 4, 1, 64), ref_clks=(RefClock(8000000),)),
    Controller(
        _btc("kvaser_pciefd", 1, 512, 1, 32, 16, 1, 8192),
        _btc("kvaser_pciefd", 1, 512, 1, 32, 16, 1, 8192),
        ref_clks=_CIA,
    ),
    Controller(
        _btc("mscan", 4, 16, 2, 8, 4, 1, 64),
        ref_clks=(
            RefClock(32000000),
            RefClock(33000000),
            RefClock(33300000),
            RefClock(33333333),
            RefClock(66660000, "mpc5121"),
            RefClock(66666666, "mpc5121"),
        ),
    ),
    Controller(
        _btc("mcan-v3.0", 2, 64, 1, 16, 16, 1, 1024),
        _btc("mcan-v3.0", 2, 16, 1, 8, 4, 1, 32),
        ref_clks=_CIA,
        register_format=MCAN,
    ),
    Controller(
        _btc("mcan-v3.1+", 2, 256, 2, 128, 128, 1, 512),
        _btc("mcan-v3.1+", 1, 32, 1, 16, 16, 1, 32),
        ref_clks=_CIA
        + (
            RefClock(24000000, "stm32mp1 - ck_hse"),
            RefClock(24573875, "stm32mp1 - pll3_q"),
            RefClock(29700000, "stm32mp1 - pll4_q"),
            RefClock(48000000, "stm32mp1 lxatac (new)"),
            RefClock(60000000, "stm32mp1 ecu02.5- pll4_r"),
            RefClock(62500000, "stm32mp1 lxatac (old) - pll4_r"),
            RefClock(74250000, "stm32mp1 - pll4_r"),
        ),
        register_format=MCAN,
    ),
    Controller(
        _btc("peak_canfd", 1, 1 << 8, 1, 1 << 7, 1 << 7, 1, 1 << 10),
        _btc("peak_canfd", 1, 1 << 5, 1, 1 << 4, 1 << 4, 1, 1 << 10),
        ref_clks=tuple(
            RefClock(clk)
            for clk in (20000000, 24000000, 30000000, 40000000, 60000000, 80000000)
        ),
    ),
    Controller(
        _btc("sja1000", 1, 16, 1, 8, 4, 1, 64),
        ref_clks=(RefClock(16000000 // 2), RefClock(24000000 // 2, "f81601")),
        register_format=SJA1000,
    ),
    Controller(_btc("sun4i_can", 1, 16, 1, 8, 4, 1, 64)),
    Controller(
        _btc("ti_hecc", 1, 16, 1, 8, 4, 1, 256),
        ref_clks=(RefClock(13000000),),
        register_format=TI_HECC,
    ),
    Controller(_btc("xilinx_can", 1, 16, 1, 8, 4, 1, 256)),
    Controller(
        _btc("xilinx_can_fd", 1, 64, 1, 16, 16, 1, 256),
        _btc("xilinx_can_fd", 1, 16, 1, 8, 8, 1, 256),
        ref_clks=_CIA,
    ),
    Controller(
        _btc("xilinx_can_fd2", 1, 256, 1, 128, 128, 2, 256),
        _btc("xilinx_can_fd2", 1, 32, 1, 16, 16, 2, 256),
        ref_clks=_CIA
        + (RefClock(79999999, "Versal ACAP"), RefClock(80000000, "Versal ACAP")),
    ),
)


def controller_names() -> list[str]:
    """Return the names of all known controllers, in table order."""
    return [controller.name for controller in CONTROLLERS]


def find_controllers(name: str | None) -> list[Controller]:
    """Return the controllers matching name (all of them for None); empty if none match."""
    if name is None:
        return list(CONTROLLERS)
    return [controller for controller in CONTROLLERS if controller.matches(name)]