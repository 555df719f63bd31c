[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scorearena"
version = "0.1.0"
description = "Storage, anti-cheat checks and prize bookkeeping for a pay-to-play arcade score competition"
requires-python = ">=3.10"
dependencies = []
keywords = ["arcade", "leaderboard", "competition", "lightning", "anti-cheat", "sqlite"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: Arcade",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["scorearena"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
