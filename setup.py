"""Setup script for neuroevolve"""

from setuptools import find_packages, setup

with open("requirements.txt") as f:
    requirements = [
        line.strip() for line in f if line.strip() and not line.startswith("#")
    ]

setup(
    name="neuroevolve",
    version="0.1.0",
    description="NSGA-II selection, novelty search and bulk fitness evaluation for neuroevolution",
    packages=find_packages(exclude=["tests*"]),
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "dev": ["pytest", "pytest-asyncio", "pytest-mock", "black", "isort", "mypy"],
    },
    entry_points={
        "console_scripts": ["neuroevolve=evolve_core.cli:main"],
    },
)
