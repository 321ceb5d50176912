#!/usr/bin/env python3
"""
Unit Cache - Setup Configuration
Two-tier unit cache with a parallel, cache-aware loader
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core dependencies
core_requirements = [
    "tqdm>=4.66.0",         # Progress bars
    "python-dotenv>=1.0.0", # Environment variables
]

# Development dependencies
dev_requirements = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "black>=23.0.0",
    "flake8>=6.0.0",
    "mypy>=1.0.0",
]

setup(
    # Package information
    name="unit-cache",
    version="1.0.0",
    author="RamC Venkatasamy",
    description="Two-tier unit cache with a parallel, cache-aware loader",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Package discovery
    packages=find_packages(exclude=["tests*", "test_*", "*.tests*"]),
    include_package_data=True,

    # Dependencies
    install_requires=core_requirements,
    extras_require={
        "dev": dev_requirements,
    },

    # Console entry points
    entry_points={
        "console_scripts": [
            "unitcache=unitcache.cli.cache_cli:main",
        ],
    },

    # Python version and classifiers
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Environment :: Console",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries",
        "Topic :: Utilities",
    ],

    keywords=["cache", "loader", "plugins", "modules", "parallel", "thread-pool"],

    zip_safe=False,
    platforms=["any"],
)
