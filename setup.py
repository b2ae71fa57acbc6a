"""Package setup for usage-gateway."""

from setuptools import setup, find_packages

setup(
    name="usage-gateway",
    version="1.0.0",
    description="Account, keyset and feature-usage gateway over the internal admin API",
    packages=find_packages(include=["admin_sdk", "admin_sdk.*", "usage_gateway", "usage_gateway.*"]),
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "httpx>=0.25.0",
        "pydantic>=2.0.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
        "click>=8.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "usage-gateway=usage_gateway.cli:app",
        ],
    },
)
