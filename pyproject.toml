[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wrpagent"
version = "0.1.0"
description = "WRP message handlers: partner authorization, missing-handler responses, mock TR-181, CRUD and quality-of-service queueing"
requires-python = ">=3.10"
keywords = ["wrp", "tr181", "qos", "message handling", "priority queue"]
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
    "Topic :: Communications",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["wrpagent"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
