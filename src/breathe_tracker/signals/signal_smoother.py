"""
Signal Smoother
===============

Turns noisy instantaneous RSSI samples into a stable strength indicator.

This processor:
    - Takes the raw RSSI attached to every beacon advertisement
    - Applies an Exponential Moving Average (EMA)
    - Resets to "no signal" when the watchdog declares a disconnection

Smoothing Choice (EMA):
    Formula: smoothed = α * raw + (1 - α) * prev_smoothed
    Where α ∈ (0, 1] controls responsiveness (higher = more responsive).
    The first sample after construction or reset initializes the average
    directly, so a reconnection never blends with a stale reading.
"""

import logging
from typing import Optional


logger = logging.getLogger(__name__)


class SignalSmoother:
    """
    EMA filter for RSSI samples.

    Attributes:
        alpha: EMA smoothing factor (0, 1]

    Example:
        smoother = SignalSmoother(alpha=0.2)
        smoother.update(-60)   # -60.0
        smoother.update(-70)   # -62.0
        smoother.reset()
        smoother.value         # None ("no signal")
    """

    def __init__(self, alpha: float = 0.2, log_every_n_samples: int = 100) -> None:
        """
        Initialize signal smoother.

        Args:
            alpha: EMA smoothing factor in (0, 1]
                - 0.2 = slow-moving, suppresses multipath noise
                - 1.0 = no smoothing
            log_every_n_samples: Log smoothed value every N samples
        """
        if not 0 < alpha <= 1:
            raise ValueError("alpha must be in (0, 1]")

        self.alpha = alpha
        self.log_every_n_samples = log_every_n_samples

        self._smoothed: Optional[float] = None
        self._sample_count: int = 0

    def update(self, raw_rssi: int) -> float:
        """
        Add a sample and return the smoothed value.

        Args:
            raw_rssi: Instantaneous RSSI (dBm)

        Returns:
            Smoothed RSSI
        """
        self._sample_count += 1

        if self._smoothed is None:
            self._smoothed = float(raw_rssi)
        else:
            self._smoothed = (
                self.alpha * raw_rssi +
                (1 - self.alpha) * self._smoothed
            )

        if self._sample_count % self.log_every_n_samples == 0:
            logger.info(
                f"RSSI [sample {self._sample_count}]: "
                f"raw={raw_rssi}, smoothed={self._smoothed:.1f}"
            )

        return self._smoothed

    def reset(self) -> None:
        """Return to the "no signal" state."""
        self._smoothed = None
        logger.info("SignalSmoother reset (no signal)")

    @property
    def value(self) -> Optional[float]:
        """Current smoothed value, None when there is no signal."""
        return self._smoothed

    @property
    def sample_count(self) -> int:
        """Number of samples processed."""
        return self._sample_count

    def get_metrics(self) -> dict:
        """Get smoother metrics for observability."""
        return {
            "sample_count": self._sample_count,
            "smoothed_rssi": self._smoothed,
            "alpha": self.alpha,
        }
