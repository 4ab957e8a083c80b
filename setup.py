#!/usr/bin/env python3
"""
Setup configuration for DevFlow.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read requirements from requirements.txt
with open('requirements.txt') as f:
    requirements = [line for line in f.read().splitlines() if line.strip()]

# Read the long description from README.md if it exists
long_description = ''
readme_path = Path('README.md')
if readme_path.exists():
    with open(readme_path, 'r', encoding='utf-8') as f:
        long_description = f.read()

setup(
    name="devflow",
    version="0.1.0",
    description="AI-assisted project setup that turns a request into shell commands and runs them",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests"]),
    py_modules=["devflow"],  # Include the core module
    install_requires=requirements,
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "devflow=devflow_cli.cli:main",
            "devflow-completion=devflow_cli.completion:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Build Tools",
        "Topic :: Utilities",
    ],
)
