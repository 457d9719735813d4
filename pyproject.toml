[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kgmcp"
version = "1.0.0"
description = "A JSON-RPC tool server over stdio that stores knowledge bases and typed connections between notes in SQLite."
requires-python = ">=3.10"
dependencies = []
keywords = ["knowledge-graph", "sqlite", "mcp", "json-rpc", "tools", "stdio"]
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
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kgmcp = "kgmcp.server:main"

[tool.hatch.build.targets.wheel]
packages = ["kgmcp"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
