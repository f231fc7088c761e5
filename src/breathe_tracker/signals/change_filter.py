"""
Change Filter
=============

Suppresses measurement updates that repeat the last accepted reading.

Beacons broadcast at high frequency while ambient readings are mostly
static. Only ozone, temperature and CO2 are compared, by exact value;
battery is excluded so that battery drain keeps being republished on
every frame.
"""

import logging
from typing import Optional

from breathe_tracker.models.measurement import Measurement


logger = logging.getLogger(__name__)


class ChangeFilter:
    """Exact-equality filter over the (ozone, temperature, CO2) triplet."""

    def __init__(self) -> None:
        self._suppressed_count: int = 0
        self._passed_count: int = 0

    def should_publish(
        self,
        previous: Optional[Measurement],
        candidate: Measurement,
    ) -> bool:
        """
        Decide whether a candidate is a new reading.

        Args:
            previous: Last accepted measurement (None if none yet)
            candidate: Newly decoded measurement

        Returns:
            False when ozone, temperature and CO2 all equal the previous
            accepted values, True otherwise.
        """
        if previous is not None and candidate.same_readings(previous):
            self._suppressed_count += 1
            return False

        self._passed_count += 1
        return True

    @property
    def suppressed_count(self) -> int:
        """Number of candidates suppressed as duplicates."""
        return self._suppressed_count

    def get_metrics(self) -> dict:
        return {
            "passed": self._passed_count,
            "suppressed": self._suppressed_count,
        }
