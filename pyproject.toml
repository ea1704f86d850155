[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lightningsync"
version = "0.1.0"
description = "Snapshot naming, compression, cleanup and receiving for syncing key-value databases through blob storage"
requires-python = ">=3.10"
dependencies = []
keywords = ["sync", "snapshot", "lmdb", "replication", "blob-storage"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lightningsync"]

[tool.pytest.ini_options]
addopts = "-ra"
