[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "streamsync"
version = "0.1.0"
description = "Relay entries from local Redis streams to a remote Redis instance through a consumer group, with health and metrics endpoints."
requires-python = ">=3.10"
keywords = ["redis", "streams", "replication", "sync", "consumer-group"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "redis>=4.5",
    "flask>=2.2",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
]

[project.scripts]
streamsync = "streamsync.app:main"

[tool.hatch.build.targets.wheel]
packages = ["streamsync"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
