[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sidepool"
version = "0.1.0"
description = "Mining side-chain building blocks: pool blocks, PPLNS payouts, difficulty, verification, chain selection and peer addresses"
requires-python = ">=3.10"
keywords = [
    "mining",
    "pool",
    "sidechain",
    "pplns",
    "proof-of-work",
    "difficulty",
]
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
    "Topic :: System :: Distributed Computing",
    "Typing :: Typed",
]
dependencies = [
    "pycryptodome",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["sidepool"]

[tool.hatch.build.targets.sdist]
include = [
    "sidepool",
    "tests",
]

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
no_implicit_optional = true

[[tool.mypy.overrides]]
module = ["Crypto.*"]
ignore_missing_imports = true
