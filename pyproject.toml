[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "setera"
version = "0.1.0"
description = "Tenant placement for Kubernetes clusters: Tenant and NodeStore resources, an admission webhook and a tenant orchestrator"
requires-python = ">=3.10"
keywords = ["kubernetes", "admission-webhook", "multi-tenancy", "orchestrator", "controller"]
classifiers = [
    "Development Status :: 3 - Alpha",
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
dependencies = [
    "pyyaml",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
setera-webhook = "setera.webhook.server:main"

[tool.hatch.build.targets.wheel]
packages = ["setera"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
