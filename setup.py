"""Package setup for promptteams."""

from setuptools import setup, find_packages

setup(
    name="promptteams",
    version="0.4.0",
    description="Team membership, invitations and concurrent-safe prompt ratings",
    packages=find_packages(include=["promptteams", "promptteams.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "httpx>=0.24.0",
        "pyyaml>=6.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "promptteams=promptteams.cli:app",
        ],
    },
)
