"""setuptools setup for TimeTrack.

Install the engine and its job runner:
    pip install -e .
    pip install -e .[test]
"""

from setuptools import setup, find_packages

setup(
    name="TimeTrack",
    version="0.1.0",
    description="Timer lifecycle and interruption engine for multi-tenant time tracking",
    packages=find_packages(include=["timetrack", "timetrack.*"]),
    python_requires=">=3.10",
    install_requires=[
        "SQLAlchemy>=2.0",
        "PyQt6>=6.5",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["timetrack=timetrack.__main__:main"],
    },
)
