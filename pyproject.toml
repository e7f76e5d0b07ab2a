[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "asyncpatterns"
version = "0.1.0"
description = "Coroutines, actors, event buses, a small polling runtime and other asynchronous programming patterns"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "async",
    "asyncio",
    "coroutines",
    "actors",
    "event bus",
    "executor",
    "circuit breaker",
    "retry",
    "key-value store",
]
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
    "Framework :: AsyncIO",
    "Topic :: Software Development :: Libraries",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
asyncpatterns-server = "asyncpatterns.server:main"
asyncpatterns-thermostat = "asyncpatterns.thermostat:main"

[tool.hatch.build.targets.wheel]
packages = ["asyncpatterns"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
