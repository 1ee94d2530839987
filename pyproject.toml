[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "envreload"
version = "0.1.0"
description = "Auto-reloading environment holders and scope-bound value handles"
requires-python = ">=3.10"
keywords = ["reload", "autoreload", "environment", "watchdog", "scope", "handles"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["envreload"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
