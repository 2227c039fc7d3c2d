[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "podjoule"
version = "0.1.0"
description = "Energy accounting for nodes, containers and processes, with Prometheus metric descriptors"
requires-python = ">=3.10"
dependencies = []
keywords = ["energy", "power", "rapl", "prometheus", "containers", "kubernetes", "monitoring"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["podjoule"]

[tool.pytest.ini_options]
addopts = "-ra"
