"""
Setup script for keycoach.

keycoach is the adaptive weakness engine of a touch-typing tutor. It
watches the keystroke stream and answers three questions:

1. Which keys are weak - Bayesian accuracy, learning-state and n-gram models
2. What to practice next - priority ranking and spaced-repetition intervals
3. Where the next error is likely - live per-keystroke risk prediction

The 'keycoach' command replays recorded sessions and shows the analysis.
"""

from setuptools import find_packages, setup

setup(
    name="keycoach",
    version="1.0.0",
    description="Adaptive weakness detection and practice prioritization for typing tutors",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="keycoach contributors",
    packages=find_packages(include=["keycoach", "keycoach.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.12.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "keycoach=keycoach.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="typing touch-typing bayesian hmm spaced-repetition education",
)
