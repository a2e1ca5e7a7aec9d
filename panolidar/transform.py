"""Rigid body transforms in 3D."""

from __future__ import annotations

import numpy as np


def hat3(v) -> np.ndarray:
    """Skew-symmetric matrix such that ``hat3(v) @ w == cross(v, w)``."""
    x, y, z = np.asarray(v, dtype=float).reshape(3)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


class SE3:
    """Rotation plus translation acting as ``R @ p + t``."""

    __slots__ = ("rotation", "translation")

    def __init__(self, rotation=None, translation=None) -> None:
        self.rotation = (
            np.eye(3) if rotation is None else np.array(rotation, dtype=float).reshape(3, 3)
        )
        self.translation = (
            np.zeros(3) if translation is None else np.array(translation, dtype=float).reshape(3)
        )

    def __repr__(self) -> str:
        return f"SE3(rotation={self.rotation.tolist()}, translation={self.translation.tolist()})"

    @classmethod
    def identity(cls) -> SE3:
        return cls()

    @classmethod
    def from_rotvec(cls, rotvec, translation=None) -> SE3:
        """Build a transform from an axis-angle vector (exponential map)."""
        w = np.asarray(rotvec, dtype=float).reshape(3)
        theta = float(np.linalg.norm(w))
        if theta < 1e-10:
            rot = np.eye(3) + hat3(w)
        else:
            k = hat3(w / theta)
            rot = np.eye(3) + np.sin(theta) * k + (1.0 - np.cos(theta)) * (k @ k)
        return cls(rot, translation)

    def inverse(self) -> SE3:
        rt = self.rotation.T
        return SE3(rt, -rt @ self.translation)

    def __matmul__(self, other):
        if isinstance(other, SE3):
            return SE3(
                self.rotation @ other.rotation,
                self.rotation @ other.translation + self.translation,
            )
        return self.apply(other)

    def apply(self, points) -> np.ndarray:
        """Transform a point or an ``(N, 3)`` array of points."""
        pts = np.asarray(points, dtype=float)
        return pts @ self.rotation.T + self.translation

    def matrix(self) -> np.ndarray:
        """Homogeneous 4x4 matrix."""
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m