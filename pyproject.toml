[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "eebus"
version = "0.1.0"
description = "Memory bus model of a console Emotion Engine: TLB translation, BIOS image, RDRAM controller, DMA controller and guest memory access paths"
requires-python = ">=3.10"
dependencies = []
keywords = ["emulator", "mips", "tlb", "dma", "memory-bus", "rdram"]
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
    "Topic :: System :: Emulators",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["eebus"]

[tool.pytest.ini_options]
addopts = "-ra"
