"""
Threshold Evaluation
====================

Maps accepted measurements to per-kind alert states with edge transitions.

Thresholds (single high-water mark per kind):
    CO2:          raise at >= 1200 ppm, clear below
    Ozone:        raise at >= 0.9 ppm,  clear below
    Temperature:  raise above 35.0 °C,  clear at or below
    Battery:      raise at or below 15 %, clear above

Key Features:
    - Edge-triggered: RAISE on entering (or on a changed triggering value,
      which replaces the outstanding notification), CLEAR on leaving
    - A CLEAR is only ever emitted for a kind that was raised
    - CO2, OZONE and TEMPERATURE form the combined alert list;
      BATTERY only produces notifications
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from breathe_tracker.models.alerts import (
    COMBINED_ALERT_KINDS,
    AlertKind,
    AlertState,
    AlertTransition,
    EvaluationResult,
    TransitionAction,
)
from breathe_tracker.models.measurement import Measurement


logger = logging.getLogger(__name__)


@dataclass
class AlertThresholds:
    """
    Alert thresholds.

    Loaded from configuration file.
    """

    co2_ppm: int = 1200
    ozone_ppm: float = 0.9
    temperature_c: float = 35.0
    battery_pct: int = 15


_DEFAULTS = AlertThresholds()


def is_co2_dangerous(co2: int, threshold: int = _DEFAULTS.co2_ppm) -> bool:
    return co2 >= threshold


def is_ozone_dangerous(ozone: float, threshold: float = _DEFAULTS.ozone_ppm) -> bool:
    return ozone >= threshold


def is_temperature_dangerous(
    temperature: float,
    threshold: float = _DEFAULTS.temperature_c,
) -> bool:
    return temperature > threshold


def is_battery_critical(battery: int, threshold: int = _DEFAULTS.battery_pct) -> bool:
    return battery <= threshold


def format_clock(timestamp: float) -> str:
    """Format a UNIX timestamp as local HH:MM."""
    return time.strftime("%H:%M", time.localtime(timestamp))


_TITLES = {
    AlertKind.CO2: "CO2 Alert",
    AlertKind.OZONE: "Ozone Alert",
    AlertKind.TEMPERATURE: "Temperature Alert",
    AlertKind.BATTERY: "Battery Alert",
}


class ThresholdEvaluator:
    """
    Evaluates measurements against fixed safety thresholds.

    Keeps the set of currently raised kinds so that each evaluation can
    emit edge transitions instead of level snapshots.

    Example:
        evaluator = ThresholdEvaluator()
        result = evaluator.evaluate(measurement)
        for transition in result.transitions:
            notifications.apply(transition)
        bus.publish(alerts=result.alert_text)
    """

    def __init__(self, thresholds: Optional[AlertThresholds] = None) -> None:
        self.thresholds = thresholds or AlertThresholds()
        self._raised: Dict[AlertKind, Union[int, float]] = {}
        self._evaluation_count: int = 0

        th = self.thresholds
        logger.info(
            f"ThresholdEvaluator initialized: co2>={th.co2_ppm}, "
            f"ozone>={th.ozone_ppm}, temperature>{th.temperature_c}, "
            f"battery<={th.battery_pct}"
        )

    def evaluate(self, measurement: Measurement) -> EvaluationResult:
        """
        Evaluate one accepted measurement.

        Args:
            measurement: Accepted (non-suppressed) measurement

        Returns:
            EvaluationResult with raised kinds, combined alert messages,
            edge transitions and per-kind states
        """
        self._evaluation_count += 1
        th = self.thresholds
        clock = format_clock(measurement.captured_at)

        checks = (
            (AlertKind.CO2, measurement.co2,
             is_co2_dangerous(measurement.co2, th.co2_ppm)),
            (AlertKind.OZONE, measurement.ozone,
             is_ozone_dangerous(measurement.ozone, th.ozone_ppm)),
            (AlertKind.TEMPERATURE, measurement.temperature,
             is_temperature_dangerous(measurement.temperature, th.temperature_c)),
            (AlertKind.BATTERY, measurement.battery,
             is_battery_critical(measurement.battery, th.battery_pct)),
        )

        messages: List[str] = []
        transitions: List[AlertTransition] = []
        states: Dict[AlertKind, AlertState] = {}

        for kind, value, dangerous in checks:
            if dangerous:
                description = self._describe(kind, value)
                if kind in COMBINED_ALERT_KINDS:
                    messages.append(f"{clock} - {description}")

                if kind not in self._raised or self._raised[kind] != value:
                    transitions.append(AlertTransition(
                        kind=kind,
                        action=TransitionAction.RAISE,
                        title=_TITLES[kind],
                        message=description,
                    ))
                    if kind not in self._raised:
                        logger.info(f"Alert raised: {kind.value} ({description})")
                self._raised[kind] = value
                states[kind] = AlertState(kind=kind, raised=True, value=value)
            else:
                if kind in self._raised:
                    del self._raised[kind]
                    transitions.append(AlertTransition(
                        kind=kind,
                        action=TransitionAction.CLEAR,
                        title=_TITLES[kind],
                    ))
                    logger.info(f"Alert cleared: {kind.value}")
                states[kind] = AlertState(kind=kind, raised=False)

        return EvaluationResult(
            raised=frozenset(self._raised),
            messages=messages,
            transitions=transitions,
            states=states,
        )

    def _describe(self, kind: AlertKind, value: Union[int, float]) -> str:
        if kind == AlertKind.CO2:
            return f"CO2 level high: {value} ppm"
        if kind == AlertKind.OZONE:
            return f"Ozone level high: {value:.3f} ppm"
        if kind == AlertKind.TEMPERATURE:
            return f"Temperature high: {value:.1f} °C"
        return f"Battery level low: {value}%"

    def reset(self) -> None:
        """Forget raised alerts."""
        self._raised.clear()

    @property
    def raised_kinds(self) -> frozenset:
        """Kinds currently raised."""
        return frozenset(self._raised)

    def get_metrics(self) -> dict:
        return {
            "evaluations": self._evaluation_count,
            "raised": sorted(kind.value for kind in self._raised),
        }
