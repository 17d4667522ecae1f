[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "spokeagent"
version = "0.4.0"
description = "Managed-cluster agent controllers that label gateway nodes and report Submariner connectivity and deployment status as status conditions"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "submariner",
    "multicluster",
    "addon",
    "gateway",
    "controller",
    "cluster-management",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
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
test = ["pytest"]

[project.scripts]
spokeagent = "spokeagent.agent:main"

[tool.hatch.build.targets.wheel]
packages = ["spokeagent"]

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
