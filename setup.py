#!/usr/bin/env python3
"""
Setup configuration for precompress.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the contents of README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

# Read requirements from requirements.txt
requirements = []
if (this_directory / "requirements.txt").exists():
    requirements = (this_directory / "requirements.txt").read_text().strip().split('\n')
    requirements = [req.strip() for req in requirements if req.strip() and not req.startswith('#')]

setup(
    name="precompress",
    version="1.0.0",
    author="precompress contributors",
    author_email="",
    description="Incremental gzip, deflate and brotli pre-compression for directory trees",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=['pipeline*']),
    py_modules=[
        'base_classes',
        'compress',
        'compression_codecs',
        'compression_pipeline',
        'pipeline_configs',
        'pipeline_errors',
        'pipeline_monitoring',
        'revision_store',
    ],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: System :: Archiving :: Compression",
        "Topic :: Internet :: WWW/HTTP :: Site Management",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov",
            "pytest-asyncio",
            "black",
            "flake8",
            "mypy",
        ],
        "test": [
            "pytest>=6.0",
            "pytest-cov",
            "pytest-asyncio",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "precompress=compress:main",
        ],
    },
    keywords=[
        "gzip",
        "brotli",
        "deflate",
        "compression",
        "static-assets",
        "incremental",
    ],
)
