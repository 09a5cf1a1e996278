[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "koda"
version = "0.1.5"
description = "Core building blocks of a terminal coding agent: approval modes, shell command safety, provider configuration, context tracking and a SQLite session store."
requires-python = ">=3.11"
keywords = ["ai", "coding-agent", "llm", "approval", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development",
]
dependencies = [
    "tomli-w>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
]

[tool.hatch.build.targets.wheel]
packages = ["koda"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
