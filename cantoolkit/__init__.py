"""Serial-line CAN (slcan) tools, CAN frame utilities and an MCP251xFD state decoder."""

__version__ = "0.1.0"