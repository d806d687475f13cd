[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kvbench"
version = "0.1.0"
description = "Key-value client building blocks: SDBM-hashed strings, byte-string helpers, argument splitting, a RESP reply reader and socket connection setup"
requires-python = ">=3.10"
dependencies = []
keywords = ["resp", "redis-protocol", "key-value", "parser", "sdbm", "sockets"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kvbench"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
