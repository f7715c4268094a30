#!/usr/bin/env python

from setuptools import setup, find_packages

setup(
    name="nodewar_tools",
    version="1.0.0",
    description="Python tools for guild node war log statistics and monthly KDA leaderboards",
    author="GeNe FRAG",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.25.0",
        "pandas>=1.0.0",
        "openpyxl>=3.0.0",
        "matplotlib>=3.0.0",
        "beautifulsoup4>=4.9.0",
        "lxml>=4.6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "nodewar-process-log=nodewar_tools.pipeline.log_processor:main",
            "nodewar-monthly-kda=nodewar_tools.pipeline.monthly_kda:main",
            "nodewar-leaderboard=nodewar_tools.reports.leaderboard:main",
        ],
    },
)
