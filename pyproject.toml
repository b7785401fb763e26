[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "astor"
version = "0.1.0"
description = "Core services for the Astor digital currency: hash-chained ledger, currency conversion, feature flags, secrets, compliance, health checks, metrics and cross-chain bridges"
requires-python = ">=3.10"
keywords = [
    "currency",
    "ledger",
    "exchange-rates",
    "compliance",
    "monitoring",
    "feature-flags",
    "prometheus",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Office/Business :: Financial",
]
dependencies = [
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "respx",
]

[tool.hatch.build.targets.wheel]
packages = ["astor"]

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
