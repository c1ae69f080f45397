[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hubreg"
version = "0.1.0"
description = "Hub-side controllers for managed cluster registration: CSR renewal approval, lease health, cluster sets, add-on status labels and RBAC finalizers."
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = [
    "cluster",
    "registration",
    "controller",
    "reconciler",
    "lease",
    "csr",
    "multicluster",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Clustering",
]

[project.optional-dependencies]
test = [
    "pytest",
    "cryptography",
]

[tool.hatch.build.targets.wheel]
packages = ["hubreg"]

[tool.hatch.build.targets.sdist]
include = [
    "hubreg",
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
