[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "etherrecorder"
version = "0.1.0"
description = "Threaded TCP client and command interface that records received network data to rotating logs"
requires-python = ">=3.10"
dependencies = []
keywords = ["tcp", "udp", "network", "recorder", "logging", "hex dump", "command protocol"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
etherrecorder = "etherrecorder.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["etherrecorder"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
