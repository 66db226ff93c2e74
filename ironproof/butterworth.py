"""
Low-pass filtering for IronProof.

Direct-form IIR realisation of a 4th-order Butterworth low-pass, used to
knock impact spikes and sensor noise out of the linear acceleration before
it is integrated.
"""

import math

from .config import FilterCoefficients
from .log_utils import get_logger

logger = get_logger("filter")

HISTORY = 5  # x[n-4] .. x[n]


class ButterworthLowPass:
    """
    4th-order Butterworth low-pass with fixed coefficients.

    The output at step n depends on the previous four inputs and outputs,
    so samples must be fed one at a time in arrival order. One instance per
    signal; never share an instance between streams.

        x[n] = value / GAIN
        y[n] = (x[n-4] + x[n]) + 4*(x[n-3] + x[n-1]) + 6*x[n-2]
               + fb[0]*y[n-4] + fb[1]*y[n-3] + fb[2]*y[n-2] + fb[3]*y[n-1]

    Usage:
        lp = ButterworthLowPass(PipelineConfig.from_preset("200hz").filter)
        smoothed = lp.filter(a_lin_z)
    """

    def __init__(self, coefficients: FilterCoefficients):
        """
        Args:
            coefficients: GAIN and feedback taps for the sample rate in use
        """
        self.coefficients = coefficients
        self._gain = coefficients.gain
        self._fb0, self._fb1, self._fb2, self._fb3 = coefficients.feedback

        # Fixed-size histories, oldest first
        self._xv = [0.0] * HISTORY
        self._yv = [0.0] * HISTORY

        # Non-finite inputs dropped since construction
        self.rejected = 0

    def filter(self, value: float) -> float:
        """
        Push one sample through the filter.

        Args:
            value: New input sample

        Returns:
            Filtered sample. A non-finite input is not shifted into the
            history; the previous output is returned instead.
        """
        xv, yv = self._xv, self._yv

        if not math.isfinite(value):
            self.rejected += 1
            logger.warning(f"Rejected non-finite filter input {value!r}")
            return yv[4]

        # Shift histories by one slot, evicting the oldest value
        xv[0], xv[1], xv[2], xv[3] = xv[1], xv[2], xv[3], xv[4]
        xv[4] = value / self._gain

        yv[0], yv[1], yv[2], yv[3] = yv[1], yv[2], yv[3], yv[4]
        yv[4] = ((xv[0] + xv[4]) + 4 * (xv[1] + xv[3]) + 6 * xv[2]
                 + self._fb0 * yv[0] + self._fb1 * yv[1]
                 + self._fb2 * yv[2] + self._fb3 * yv[3])

        if not math.isfinite(yv[4]):
            # Feedback overflowed; it would never recover on its own
            logger.warning("Filter output diverged, resetting history")
            self.reset()

        return yv[4]

    @property
    def output(self) -> float:
        """Most recent output."""
        return self._yv[4]

    def reset(self):
        """Zero both histories."""
        for i in range(HISTORY):
            self._xv[i] = 0.0
            self._yv[i] = 0.0
