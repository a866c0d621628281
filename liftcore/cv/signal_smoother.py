"""
Temporal smoothing of a scalar signal using Savitzky-Golay and EMA.

SMOOTHING STRATEGY:
1. Savitzky-Golay filter: primary smoother once the window is full -
   preserves turning points with little phase lag
2. EMA fallback: for the first few samples where SG can't be applied

Used for the tracked joint angle (phase detection) and for the
differentiated joint velocity, where numerical differentiation amplifies
sensor noise.
"""

import logging
from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np
from scipy.signal import savgol_filter

logger = logging.getLogger(__name__)


class SignalSmoother:
    """
    Streaming smoother for one scalar signal.

    Features:
    - Savitzky-Golay filter evaluated at the newest sample
    - EMA fallback for short histories
    - Confidence-weighted EMA
    """

    MIN_SG_WINDOW = 3

    def __init__(
        self,
        window_size: int = 7,
        poly_order: int = 2,
        alpha: float = 0.3,
        use_savgol: bool = True
    ):
        """
        Initialize smoother.

        Args:
            window_size: Number of samples kept (also the SG window, made odd)
            poly_order: SG polynomial order
            alpha: EMA smoothing factor for the fallback (1 = no history)
            use_savgol: Whether to use Savitzky-Golay (True) or just EMA (False)
        """
        self.window_size = max(window_size, 1)
        self.poly_order = poly_order
        self.alpha = alpha
        self.use_savgol = use_savgol

        sg_window = self.window_size if self.window_size % 2 == 1 else self.window_size - 1
        self.sg_window = sg_window

        self.history: Deque[Tuple[float, float, float]] = deque(maxlen=self.window_size)
        self.smoothed: Optional[float] = None
        self._smoothed_conf: float = 0.0

    def push(self, value: float, timestamp: float = 0.0, confidence: float = 1.0) -> float:
        """Add a raw sample and return the smoothed value at that sample."""
        self.history.append((float(value), float(timestamp), float(confidence)))

        can_savgol = (
            self.use_savgol
            and self.sg_window >= self.MIN_SG_WINDOW
            and self.sg_window > self.poly_order
            and len(self.history) >= self.sg_window
        )
        if can_savgol:
            smooth = self._apply_savgol()
        else:
            smooth = self._apply_ema(float(value), float(confidence))

        self.smoothed = smooth
        return smooth

    def _apply_savgol(self) -> float:
        """Apply Savitzky-Golay filter to the history, evaluated at the newest sample."""
        values = np.array([h[0] for h in self.history][-self.sg_window:])
        try:
            return float(savgol_filter(values, self.sg_window, self.poly_order)[-1])
        except ValueError as e:
            logger.warning(f"Savgol filter failed: {e}")
            return float(values[-1])

    def _apply_ema(self, value: float, conf: float) -> float:
        """Apply EMA smoothing (fallback when SG can't be used)."""
        if self.smoothed is None:
            self._smoothed_conf = conf
            return value

        # Confidence-weighted alpha; equal confidences give alpha unchanged
        effective_alpha = min(1.0, self.alpha * 2.0 * conf / (conf + self._smoothed_conf + 1e-6))
        self._smoothed_conf = max(conf, self._smoothed_conf * 0.95)
        return self.smoothed * (1 - effective_alpha) + value * effective_alpha

    @property
    def last_raw(self) -> Optional[float]:
        return self.history[-1][0] if self.history else None

    def reset(self):
        """Reset all smoothing history."""
        self.history.clear()
        self.smoothed = None
        self._smoothed_conf = 0.0
