[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "panolidar"
version = "0.1.0"
description = "Lidar odometry building blocks: sweep grids, depth panoramas and generalized ICP against a panorama window"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "lidar",
    "odometry",
    "icp",
    "gicp",
    "panorama",
    "point-cloud",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
panolidar-play = "panolidar.play:main"

[tool.hatch.build.targets.wheel]
packages = ["panolidar"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
