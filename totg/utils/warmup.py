"""
JIT warmup utilities.

Call warmup_jit() on startup to pre-compile the numba limit-curve kernels
before planning. With cache=True, this is fast if the cache exists, slower
(a few seconds) on first run.
"""

import logging
import time

import numpy as np

from totg.motion.limits import (
    acceleration_max_path_velocity,
    min_max_path_acceleration,
    velocity_max_path_velocity,
    velocity_max_path_velocity_deriv,
)

logger = logging.getLogger(__name__)


def warmup_jit() -> float:
    """
    Pre-compile all numba JIT functions by calling them with dummy data.

    Returns the time taken in seconds.
    """
    logger.info("Warming JIT...")
    start = time.perf_counter()

    tangent = np.array([1.0, 0.0], dtype=np.float64)
    curvature = np.zeros(2, dtype=np.float64)
    limits = np.ones(2, dtype=np.float64)

    # totg/motion/limits.py
    min_max_path_acceleration(tangent, curvature, limits, 0.0, True)
    min_max_path_acceleration(tangent, curvature, limits, 0.0, False)
    acceleration_max_path_velocity(tangent, curvature, limits)
    velocity_max_path_velocity(tangent, limits)
    velocity_max_path_velocity_deriv(tangent, curvature, limits)

    elapsed = time.perf_counter() - start
    logger.info(f"\tJIT warmup completed in {elapsed * 1000:.1f}ms")
    return elapsed
