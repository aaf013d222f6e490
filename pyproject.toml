[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "eisrecords"
version = "0.1.0"
description = "Record repositories for a school information system, stored in SQLite through a DB-API connection."
requires-python = ">=3.10"
keywords = ["school", "repository", "database", "sqlite", "records", "attendance", "grades"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Education",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["eisrecords"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
