[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "iotshadow"
version = "0.1.0"
description = "Device shadow core for an IoT engine: subscription matching, message logs, shadow storage and downlink routing"
requires-python = ">=3.10"
keywords = ["iot", "device-shadow", "subscription", "message-log", "gateway"]
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
    "Topic :: Home Automation",
    "Typing :: Typed",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["iotshadow"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
