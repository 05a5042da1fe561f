"""
Attune Dialogue Core Setup Configuration.

This allows the core to be installed via pip.
"""

from setuptools import setup, find_packages

setup(
    name="attune-core",
    version="1.0.0",
    author="Attune",
    description=(
        "Emotionally-aware spoken-dialogue controller: emotion fusion, "
        "turn-taking, crisis escalation and barge-in arbitration"
    ),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
    ],
    packages=find_packages(include=["attune_core", "attune_core.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "structlog>=23.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
        ],
    },
    keywords=[
        "voice",
        "dialogue",
        "emotion",
        "turn-taking",
        "barge-in",
        "conversational-ai",
    ],
)
