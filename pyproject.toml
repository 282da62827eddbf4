[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "canutils"
version = "0.1.0"
description = "Calculate and decode CAN and CAN FD bit timing parameters for a wide range of CAN controllers"
requires-python = ">=3.10"
dependencies = []
keywords = ["can", "can-fd", "bit-timing", "socketcan", "embedded"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems :: Controller Area Network (CAN)",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
can-calc-bit-timing = "canutils.calc_cli:main"

[tool.setuptools.packages.find]
include = ["canutils*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
