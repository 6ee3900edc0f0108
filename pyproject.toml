[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chronon"
version = "0.1.0"
description = "Deterministic state-machine building blocks: application interface, checksummed snapshots, exactly-once side effects and replication messages"
requires-python = ">=3.10"
keywords = ["distributed", "replication", "consensus", "deterministic", "state-machine", "snapshot"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["chronon"]

[tool.pytest.ini_options]
addopts = "-ra"
