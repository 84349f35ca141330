[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fenrir"
version = "0.5.1"
description = "A logging handler that batches log records and pushes them to a Loki endpoint."
requires-python = ">=3.10"
dependencies = []
keywords = ["loki", "logging", "log", "log-aggregation", "handler"]
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
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
fenrir-demo = "fenrir.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["fenrir"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
