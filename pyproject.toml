[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "snartcut"
version = "0.1.2"
description = "Device workers and wire protocols for vinyl cutters and laser engravers: GRBL, Ruida, HPGL and Vevor Smart 1"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = [
    "laser",
    "vinyl-cutter",
    "grbl",
    "ruida",
    "hpgl",
    "plotter",
    "cnc",
    "serial",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Manufacturing",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: Terminals :: Serial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["snartcut"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
