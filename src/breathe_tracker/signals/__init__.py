"""
Signals Module
==============

Per-frame signal processing for the tracking engine.

This module provides processors that turn raw per-frame inputs into
stable signals: EMA smoothing of RSSI and suppression of repeated readings.
"""

from breathe_tracker.signals.change_filter import ChangeFilter
from breathe_tracker.signals.signal_smoother import SignalSmoother

__all__ = ["ChangeFilter", "SignalSmoother"]
