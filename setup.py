from setuptools import setup, find_packages
from pathlib import Path

# Read the README file for the long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="bka",
    version="0.1.0",
    description="Book Assembly: a personal book library with reading tracking, wishlist and backups",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["bka", "bka.*"]),
    entry_points={
        "console_scripts": [
            "bka=bka.cli:app"
        ],
    },
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.0.0",
        "SQLAlchemy>=2.0.0",
        "aiohttp>=3.8.0",  # Bibliographic lookup
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
    ],
    python_requires='>=3.9',
)
