from __future__ import annotations

import os

from setuptools import find_packages, setup

dependencies = [
    "anyio>=4.2.0",  # Shielded cancel scopes for teardown, pytest plugin for async tests
    "colorlog>=6.8.2",  # Adds color to logs
    "concurrent-log-handler>=0.9.25",  # Concurrently log and rotate logs
    "typing-extensions>=4.10.0",  # typing backports like final
]

dev_dependencies = [
    "aiohttp>=3.9.2",  # HTTP targets and clients in end to end tests
    "coverage>=7.4.1",
    "pytest>=8.0.2",
    "pytest-cov>=4.1.0",
    "pytest-mock>=3.12.0",
    "pytest-xdist>=3.5.0",
    "isort>=5.13.2",
    "flake8>=7.0.0",
    "mypy>=1.8.0",
    "black>=23.12.1",
]

kwargs = dict(
    name="badnet",
    version="0.1.0",
    description="TCP proxy for tests that injects latency, throttling and partial reads and writes.",
    license="Apache License",
    python_requires=">=3.9, <4",
    keywords="proxy testing fault injection chaos network",
    install_requires=dependencies,
    extras_require=dict(
        dev=dev_dependencies,
    ),
    packages=find_packages(include=["badnet", "badnet.*"]),
    package_data={
        "": ["py.typed"],
    },
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    zip_safe=False,
)

if len(os.environ.get("BADNET_SKIP_SETUP", "")) < 1:
    setup(**kwargs)  # type: ignore
