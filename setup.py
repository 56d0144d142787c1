#!/usr/bin/env python3
"""
Setup script for texmodbot
"""

from setuptools import setup, find_namespace_packages

setup(
    name="texmodbot",
    version="0.1.0",
    description="Game-protocol client that authenticates with SRP and prints the textures a server uses",
    packages=find_namespace_packages(include=["client", "client.*", "shared", "shared.*"]),
    install_requires=[
        "websockets>=15.0",
        "cryptography>=43.0.1",
        "typer>=0.15.0",
        "rich>=13.9.2",
        "PyYAML>=6.0.2",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'texmodbot=client.cli:app',
        ],
    },
)
