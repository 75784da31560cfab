"""
Sentry Notify setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="sentry-notify",
    version="1.0.0",
    description="Sentry Notify — Execution alerts rendered into Sentry events",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"sentry_notify.templates": ["*.tmpl"]},
    include_package_data=True,
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "sentry-notify=sentry_notify.cli:main",
        ],
    },
    install_requires=[
        "pydantic>=2.5",
        "pyyaml>=6.0",
        "httpx>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
)
