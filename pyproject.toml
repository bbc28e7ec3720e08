[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "camconv"
version = "0.1.0"
description = "Convert raw camera frames (RGB565, RGB888, YUV422, grayscale) to baseline JPEG and BMP"
requires-python = ">=3.10"
dependencies = []
keywords = ["jpeg", "bmp", "yuv", "rgb565", "camera", "image conversion", "encoder"]
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
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["camconv"]

[tool.pytest.ini_options]
addopts = "-ra"
