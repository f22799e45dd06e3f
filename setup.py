from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="cloud-cost-analytics",
    version="0.1.0",
    author="Your Organization",
    author_email="cloud-cost-analytics@your-org.com",
    description="Cost efficiency, rightsizing and anomaly analytics for multi-cloud billing data",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/your-org/cloud-cost-analytics",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.8",
    install_requires=[
        "pyyaml>=6.0",
        "click>=8.1.0",
        "pandas>=1.5.0",
        "openpyxl>=3.1.0",
        "tabulate>=0.9.0",
        "python-dateutil>=2.8.0",
        "colorlog>=6.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.2.0",
            "pytest-cov>=4.0.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "cost-analytics=cloud_cost_analytics.cli:cli",
        ],
    },
)
