"""
Setup script for blocknet package

This file defines how the package is installed via pip.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

# Read requirements
requirements = []
requirements_file = this_directory / "requirements.txt"
if requirements_file.exists():
    with open(requirements_file, "r") as f:
        requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="blocknet",
    version="0.1.0",
    description="Block-based neural networks on PyTorch with portable parameter files and a text pipeline",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["blocknet", "blocknet.*"]),
    classifiers=[
        # Development status
        "Development Status :: 3 - Alpha",
        # Intended audience
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        # Topics
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        # License
        "License :: OSI Approved :: MIT License",
        # Python versions
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        # Operating systems
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.950",
        ],
        "test": [
            "pytest>=7.0.0",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="neural-network deep-learning pytorch blocks embedding vocabulary sentencepiece",
)
