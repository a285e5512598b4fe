"""
SortHarness: Correctness and Performance Comparison for Sort Implementations

Runs candidate sort implementations against a reference over generated
corpora and flag combinations:
1. Deterministic formula corpora plus seeded free-text and random-line corpora
2. Exact-order and multiset output equivalence, diff or digest based
3. Wall, user, system time and peak memory per implementation
4. Console, JSON, Markdown and chart reports
"""

from setuptools import setup, find_packages

setup(
    name="sortharness",
    version="1.0.0",
    description="Correctness and performance comparison harness for sort implementations",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.24.0",
        "psutil>=5.9",
        "tabulate>=0.9",
        "matplotlib>=3.7",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "sortharness=sortharness.cli:main",
            "sortharness-freetext=sortharness.corpus.freetext:free_text_main",
            "sortharness-randlines=sortharness.corpus.freetext:random_lines_main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Testing",
        "Topic :: System :: Benchmark",
    ],
)
