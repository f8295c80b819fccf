"""
Central configuration for totg tunables and shared constants.
"""

from __future__ import annotations

import logging
import os

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")
# Add Logger.trace if missing
if not hasattr(logging.Logger, "trace"):

    def _trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = _trace  # type: ignore[attr-defined]
    logging.TRACE = TRACE  # type: ignore[attr-defined]

TRACE_ENABLED = str(os.getenv("TOTG_TRACE", "0")).lower() in ("1", "true", "yes", "on")

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number), using %s", name, raw, default)
        return default
    if not value > minimum:
        logger.warning("Ignoring %s=%r (must be > %s), using %s", name, raw, minimum, default)
        return default
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer), using %d", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r (must be positive), using %d", name, raw, default)
        return default
    return value


# Maximum deviation at blended intermediate waypoints, in configuration-space
# units (rad for revolute joints, m for prismatic joints).
DEFAULT_PATH_TOLERANCE: float = _env_float("TOTG_PATH_TOLERANCE", 0.1)

# Phase-plane integration step (s)
DEFAULT_TIME_STEP: float = _env_float("TOTG_TIME_STEP", 0.001)

# Adapter resampling period (s)
DEFAULT_RESAMPLE_DT: float = _env_float("TOTG_RESAMPLE_DT", 0.1)

# Waypoints whose every joint moves less than this are dropped by the adapter
DEFAULT_MIN_ANGLE_CHANGE: float = _env_float("TOTG_MIN_ANGLE_CHANGE", 0.001)

DEFAULT_SCALING_FACTOR: float = 1.0

# Upper bound on forward/backward passes before construction gives up
MAX_SWITCHING_ITERATIONS: int = _env_int("TOTG_MAX_SWITCHING_ITERATIONS", 100_000)

# Numeric tolerance for boundary tests and finite differences
EPS: float = 1e-6

# Bounded numeric search for velocity-type switching points
VELOCITY_SEARCH_STEP: float = 1e-3
VELOCITY_SEARCH_ACCURACY: float = 1e-6

# Adjacent path directions with |cos| above this are treated as parallel
COLLINEAR_COS: float = 0.999999
