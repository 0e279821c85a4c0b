[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "semslam"
version = "0.1.0"
description = "Building blocks for semantic RGB-D SLAM: frames, keyframes, covisibility, place recognition, detection alignment and plane fitting"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["slam", "rgb-d", "keyframe", "covisibility", "kmeans", "computer-vision", "robotics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Image Recognition",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["semslam"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
