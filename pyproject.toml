[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "manifest"
version = "0.1.17"
description = "Living feature documentation store: projects, hierarchical features, work sessions, tasks and history on SQLite"
requires-python = ">=3.10"
dependencies = [
    "platformdirs",
]
keywords = ["documentation", "features", "sqlite", "sessions", "tasks", "ai-agents"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Software Development :: Documentation",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["manifest"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
