"""Setup configuration for ado_flow_metrics"""

from setuptools import setup, find_packages

setup(
    name="ado-flow-metrics",
    version="0.1.0",
    description=(
        "CLI tool for Azure DevOps Kanban flow metrics: board column entry "
        "dates, backflow correction and blocked days, with an incremental cache."
    ),
    author="ADO Flow Metrics Contributors",
    author_email="",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "ado-flow-metrics=ado_flow_metrics.main:main",
        ],
    },
)
