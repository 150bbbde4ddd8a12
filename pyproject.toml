[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "aetherlink"
version = "0.1.0"
description = "Low-power mesh networking nodes (client, forwarder, server) with a simulated radio channel"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "mesh",
    "networking",
    "routing",
    "service-discovery",
    "simulator",
    "beacon",
    "crc16",
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
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
aetherlink-server = "aetherlink.server:main"
aetherlink-forward = "aetherlink.forward:main"
aetherlink-client = "aetherlink.client:main"

[tool.hatch.build.targets.wheel]
packages = ["aetherlink"]

[tool.pytest.ini_options]
addopts = "-ra"
