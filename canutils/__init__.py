"""Calculation and decoding of CAN and CAN FD bit timing parameters for many CAN controllers."""

__version__ = "0.1.0"