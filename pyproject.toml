[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "siptx"
version = "0.2.91"
description = "SIP transaction layer: message model, transaction keys, timers and RFC 3261 state machines"
requires-python = ">=3.10"
dependencies = []
keywords = ["sip", "voip", "telephony", "transaction", "rfc3261"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Communications :: Telephony",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["siptx"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
