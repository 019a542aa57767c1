[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "atmbank"
version = "0.1.0"
description = "A multi-threaded bank simulation driven by ATM operation files"
requires-python = ">=3.10"
dependencies = []
keywords = ["bank", "atm", "simulation", "threads", "readers-writers"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
atmbank = "atmbank.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["atmbank"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
