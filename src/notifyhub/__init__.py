"""
NotifyHub

Multi-channel outbound notification pipeline: audit gate, channel
validation, trigger autopilot, dispatch ledger and read receipts.
"""

__version__ = "0.1.0"
