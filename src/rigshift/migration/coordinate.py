"""The coordinate law shared by every migrated quantity.

Converting between the two avatar conventions is a 180° turn about the
vertical axis: ``(x, y, z) -> (-x, y, -z)``.  Bone positions, raw vertex
buffers, gravity vectors and collider offsets all go through these
helpers so that relative geometry stays consistent.  The law is its own
inverse.
"""

import numpy as np
from numpy.typing import NDArray

from rigshift.core.math_utils import Vec3

Y180_MATRIX = np.diag([-1.0, 1.0, -1.0, 1.0])

# Sign pattern applied component-wise
_Y180_SIGNS = np.array([-1.0, 1.0, -1.0])


def rotate_y180(v) -> Vec3:
    """Return a new vector rotated 180° about +Y."""
    return np.asarray(v, dtype=np.float64)[:3] * _Y180_SIGNS


def rotate_y180_inplace(v: NDArray) -> NDArray:
    """Rotate a mutable 3-vector in place and return it."""
    v[0] = -v[0]
    v[2] = -v[2]
    return v


def rotate_y180_buffer(positions: NDArray) -> NDArray:
    """Rotate a flat (or Nx3) position buffer in place, vertex by vertex."""
    view = positions.reshape(-1, 3)
    view[:, 0] *= -1
    view[:, 2] *= -1
    return positions

