from setuptools import find_packages, setup

setup(
    name="tally",
    version="0.1.0",
    description="Derived storage statistics and cleanup suggestions over filesystem metadata.",
    python_requires=">=3.12",
    packages=find_packages(include=["tally", "tally.*"]),
    install_requires=[
        "typer>=0.12",
        "rich>=13.7",
        "result>=0.17",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    entry_points={
        "console_scripts": [
            "tally=tally.cli.app:cli",
        ],
    },
)
