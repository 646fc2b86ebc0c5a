"""
Setup script for the Notaro core notes store.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text() if (this_directory / "README.md").exists() else ""

setup(
    name="notaro-core",
    version="0.1.0",
    description="Local-first notes store with version-stamped records and last-write-wins sync",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["notaro_core", "notaro_core.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=[
        "loguru>=0.7.0",
        "pydantic>=2.0.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "hypothesis>=6.84.0",
        ],
    },
    include_package_data=True,
)
