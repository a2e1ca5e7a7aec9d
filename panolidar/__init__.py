"""Lidar odometry building blocks: sweep grids, depth panoramas and generalized ICP."""

__version__ = "0.1.0"

__all__ = [
    "gicp",
    "grid",
    "hess",
    "imuq",
    "pano",
    "play",
    "proj",
    "pwin",
    "scan",
    "transform",
]