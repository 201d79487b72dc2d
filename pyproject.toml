[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "supercache"
version = "0.1.0"
description = "Sharded in-memory key-value store with Redis-style types, TTLs and eviction policies"
requires-python = ">=3.10"
dependencies = []
keywords = ["cache", "key-value", "in-memory", "redis", "lru", "eviction", "ttl"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["supercache"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
