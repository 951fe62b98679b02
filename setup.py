"""Setup configuration for repoinsight"""

from setuptools import setup, find_packages

setup(
    name="repo-insight",
    version="0.1.0",
    description=(
        "Repository activity analytics: metrics, period-over-period trends, "
        "projections, percentile benchmarks and an executive narrative."
    ),
    author="Repo Insight Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "repo-insight=repoinsight.main:main",
        ],
    },
)
