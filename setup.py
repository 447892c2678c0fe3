#!/usr/bin/env python3
"""
Setup configuration for waylyric
Synced lyrics from MPRIS media players, rendered as a Waybar custom module
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "dbus-fast>=2.21.0",
    "mutagen>=1.47.0",
    "click>=8.1.7",
    "pyyaml>=6.0.1",
    "colorama>=0.4.6",
    "python-dotenv>=1.0.0",
    "aiohttp>=3.9.1",
]

setup(
    name="waylyric",
    version="0.1.0",
    author="waylyric contributors",
    description="Synced lyrics from MPRIS media players for Waybar",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/waylyric/waylyric",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Players",
        "Topic :: Desktop Environment",
    ],
    python_requires=">=3.9",
    install_requires=core_requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "waylyric=waylyric.main:cli",
        ],
    },
    keywords="waybar mpris dbus lyrics lrc wayland",
    project_urls={
        "Bug Reports": "https://github.com/waylyric/waylyric/issues",
        "Source": "https://github.com/waylyric/waylyric",
    },
)
