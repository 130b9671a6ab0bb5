[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blobvfs"
version = "0.1.0"
description = "One file and location interface over Azure Blob Storage and Google Cloud Storage"
requires-python = ">=3.10"
dependencies = [
    "requests",
]
keywords = [
    "vfs",
    "filesystem",
    "azure",
    "blob-storage",
    "google-cloud-storage",
    "object-storage",
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
    "Topic :: System :: Filesystems",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["blobvfs"]

[tool.hatch.build.targets.sdist]
include = [
    "blobvfs",
    "tests",
]

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
warn_unused_ignores = true
warn_redundant_casts = true
