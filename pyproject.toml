[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gossipcount"
version = "0.1.1"
description = "Eventually-consistent gossip-based aggregation with probabilistic counting sketches"
requires-python = ">=3.10"
dependencies = []
keywords = ["gossip", "crdt", "probabilistic counting", "sketch", "aggregation", "asyncio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
gossipcount = "gossipcount.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["gossipcount"]

[tool.pytest.ini_options]
addopts = "-ra"
