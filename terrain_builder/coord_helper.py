"""
Orientation <-> UV projection for equirectangular planet textures.

An orientation is a ``scipy.spatial.transform.Rotation``.  It is read as a
point on the unit sphere by rotating the forward reference axis (0, 0, 1);
that direction is then mapped to equirectangular texture coordinates:

    u = longitude / 360 + 0.5      (longitude = atan2(dx, dz))
    v = latitude  / 180 + 0.5      (latitude  = asin(dy))

u lies in [0, 1) and (0.5, 0.5) is the identity rotation; v = 0 is the
south pole and v = 1 the north pole.

Euler angles follow the terrain convention used throughout the package:
yaw about Y, then pitch about X, then roll about Z (intrinsic), all in
degrees.  Every function accepts either a single rotation / scalar UV or a
stacked rotation / numpy arrays, so whole grids are projected in one call.
"""

import warnings

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "numpy is required for coord_helper. "
        "Install it with: pip install numpy"
    )

try:
    from scipy.spatial.transform import Rotation
except ImportError:
    raise ImportError(
        "scipy is required for coord_helper. "
        "Install it with: pip install scipy"
    )


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FORWARD = np.array([0.0, 0.0, 1.0])

# Intrinsic yaw -> pitch -> roll
_EULER_SEQ = 'YXZ'


# ---------------------------------------------------------------------------
# Euler helpers
# ---------------------------------------------------------------------------

def euler_rotation(pitch, yaw, roll=0.0):
    """
    Build a rotation from pitch (X), yaw (Y) and roll (Z) in degrees.

    Scalars give a single rotation; equally-shaped arrays give a stacked
    rotation with one entry per element (flattened in C order).
    """
    pitch = np.asarray(pitch, dtype=np.float64)
    yaw = np.asarray(yaw, dtype=np.float64)
    roll = np.broadcast_to(np.asarray(roll, dtype=np.float64), pitch.shape)

    if pitch.ndim == 0:
        return Rotation.from_euler(
            _EULER_SEQ, [float(yaw), float(pitch), float(roll)], degrees=True)

    angles = np.stack([yaw.ravel(), pitch.ravel(), roll.ravel()], axis=-1)
    return Rotation.from_euler(_EULER_SEQ, angles, degrees=True)


def normalize_angle(angle):
    """Wrap degrees into [0, 360)."""
    wrapped = np.mod(angle, 360.0)
    # -1e-15 % 360 rounds up to exactly 360.0
    wrapped = np.where(wrapped >= 360.0, 0.0, wrapped)
    if np.ndim(wrapped) == 0:
        return float(wrapped)
    return wrapped


def euler_angles(rotation):
    """
    Decompose *rotation* into (pitch, yaw, roll) degrees, each in [0, 360).

    Near the poles the yaw/roll split is ambiguous; scipy picks one and
    warns about gimbal lock, which is expected here and silenced.
    """
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', UserWarning)
        yaw_pitch_roll = rotation.as_euler(_EULER_SEQ, degrees=True)

    yaw = normalize_angle(yaw_pitch_roll[..., 0])
    pitch = normalize_angle(yaw_pitch_roll[..., 1])
    roll = normalize_angle(yaw_pitch_roll[..., 2])
    return pitch, yaw, roll


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def rotation_to_direction(rotation):
    """Rotate the forward reference axis by *rotation*."""
    return rotation.apply(FORWARD)


def direction_to_uv(direction):
    """
    Map a unit direction (or an (N, 3) array of them) to equirectangular UV.

    Returns:
        (u, v) as floats for a single direction, arrays otherwise.
    """
    direction = np.asarray(direction, dtype=np.float64)
    dx = direction[..., 0]
    dy = np.clip(direction[..., 1], -1.0, 1.0)
    dz = direction[..., 2]

    longitude = np.arctan2(dx, dz)
    latitude = np.arcsin(dy)

    # atan2 gives +pi on the seam; keep u in [0, 1)
    u = np.mod(longitude / (2.0 * np.pi) + 0.5, 1.0)
    v = latitude / np.pi + 0.5

    if direction.ndim == 1:
        return float(u), float(v)
    return u, v


def rotation_to_uv(rotation):
    """
    Project an orientation onto the equirectangular texture.

    Args:
        rotation: single or stacked scipy Rotation.

    Returns:
        (u, v) in [0, 1) x [0, 1]; floats for a single rotation, arrays
        of length N for a stacked one.
    """
    return direction_to_uv(rotation_to_direction(rotation))


def wrap_uv(u, v):
    """
    Bring any UV into range: u wraps (longitude is periodic), v clamps
    (there is nothing past the poles).
    """
    u = np.mod(np.asarray(u, dtype=np.float64), 1.0)
    v = np.clip(np.asarray(v, dtype=np.float64), 0.0, 1.0)
    return u, v


def uv_to_rotation(u, v):
    """
    Inverse of :func:`rotation_to_uv`.

    Builds the orientation whose forward axis points at the direction
    implied by (*u*, *v*).  Only that direction round-trips; roll is always
    zero.  Out-of-range input is wrapped/clamped, never rejected.
    """
    u, v = wrap_uv(u, v)
    longitude = (u - 0.5) * 360.0
    latitude = (v - 0.5) * 180.0
    return euler_rotation(-latitude, longitude)
