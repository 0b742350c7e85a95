"""Setup script for Sentencing Severity Analysis package."""

from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="sentencing-severity-analysis",
    version="0.1.0",
    author="Sentencing Severity Analysis Project",
    description="Judge sentencing severity ranking and significance tests on public sentencing data",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(
        include=["sentencing_severity_analysis", "sentencing_severity_analysis.*"],
        exclude=["sentencing_severity_analysis.tests", "sentencing_severity_analysis.tests.*"],
    ),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Information Analysis",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sentencing-severity=sentencing_severity_analysis.main:main",
        ],
    },
)
