"""
Alert Models
============

Alert kinds, per-kind alert state and edge transitions.

Alert Kinds:
    CO2, OZONE, TEMPERATURE feed the combined alert list shown to users.
    BATTERY is evaluated independently and only surfaces as a notification.

Transitions:
    RAISE is emitted when a kind becomes raised (or its triggering value
    changes while raised, replacing the outstanding notification).
    CLEAR is emitted exactly once when a raised kind drops back under its
    threshold.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Union


class AlertKind(str, Enum):
    """Fixed set of alert kinds."""

    CO2 = "CO2"
    OZONE = "OZONE"
    TEMPERATURE = "TEMPERATURE"
    BATTERY = "BATTERY"


# Kinds that participate in the combined alert list
COMBINED_ALERT_KINDS = (AlertKind.CO2, AlertKind.OZONE, AlertKind.TEMPERATURE)

# Rendered alert text when an evaluation produced no combined alerts
NO_ALERTS = "No alerts"


class TransitionAction(str, Enum):
    """Edge action for a notification."""

    RAISE = "RAISE"
    CLEAR = "CLEAR"


@dataclass(frozen=True, slots=True)
class AlertState:
    """
    Alert state for a single kind.

    Attributes:
        kind: Alert kind
        raised: Whether the alert is currently raised
        value: Triggering value (None when not raised)
    """

    kind: AlertKind
    raised: bool
    value: Optional[Union[int, float]] = None


@dataclass(frozen=True, slots=True)
class AlertTransition:
    """
    Raise/clear edge for one alert kind.

    Attributes:
        kind: Alert kind
        action: RAISE or CLEAR
        title: Notification title
        message: Notification body (empty for CLEAR)
    """

    kind: AlertKind
    action: TransitionAction
    title: str
    message: str = ""


@dataclass(frozen=True)
class EvaluationResult:
    """
    Result of evaluating one accepted measurement.

    Attributes:
        raised: Kinds currently raised (including BATTERY)
        messages: Timestamped lines for the combined alert list
        transitions: Edge transitions produced by this evaluation
        states: Per-kind alert state after this evaluation
    """

    raised: FrozenSet[AlertKind]
    messages: List[str]
    transitions: List[AlertTransition]
    states: Dict[AlertKind, AlertState]

    @property
    def alert_text(self) -> str:
        """Combined alert list rendered for display."""
        if not self.messages:
            return NO_ALERTS
        return "\n\n".join(self.messages)
