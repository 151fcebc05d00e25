"""Setup script for the occurrence engine package."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, routing test tooling to the dev extra
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    content = requirements_file.read_text().strip()
    lines = content.split("\n")

    for line in lines:
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        # Separate development dependencies
        if "pytest" in line or "development" in line.lower() or "testing" in line.lower():
            dev_requirements.append(line.split("#", 1)[0].strip())
        else:
            requirements.append(line.split("#", 1)[0].strip())

setup(
    name="occurrence-engine",
    version="0.1.0",
    description="Recurring event occurrence expansion with per-date overrides",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Occurrence Engine Team",
    # Package configuration
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
    ],
    keywords="calendar recurrence rrule occurrences events scheduling",
    zip_safe=False,
)
