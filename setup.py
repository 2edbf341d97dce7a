"""Package setup for planboard."""

from setuptools import setup, find_packages

setup(
    name="planboard",
    version="1.0.0",
    description="Projects, tasks and personal calendars behind a token-authenticated API",
    packages=find_packages(include=["planboard", "planboard.*"]),
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.110.0",
        "starlette>=0.36.0",
        "uvicorn>=0.27.0",
        "pydantic>=2.5.0",
        "bcrypt>=4.0.0",
        "typer>=0.9.0",
        "rich>=13.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.4.0", "httpx>=0.25.0"],
    },
    entry_points={
        "console_scripts": [
            "planboard=planboard.cli:app",
        ],
    },
)
