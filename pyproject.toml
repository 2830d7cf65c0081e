[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "happygarden"
version = "1.0.0"
description = "Application logic for a garden irrigation controller: configuration, schedules, command parser, on-screen keyboard and status LED"
requires-python = ">=3.10"
dependencies = []
keywords = ["irrigation", "garden", "scheduler", "home-automation", "command-parser"]
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
    "Topic :: Home Automation",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["happygarden"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]
