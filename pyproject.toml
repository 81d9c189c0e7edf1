[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "orbslam"
version = "0.1.0"
description = "Feature-based visual SLAM building blocks: two-view initialization, frames, plane detection and dataset loaders"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "pillow",
]
keywords = ["slam", "computer-vision", "homography", "fundamental-matrix", "triangulation", "stereo", "rgbd"]
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
    "Topic :: Scientific/Engineering :: Image Processing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["orbslam"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
