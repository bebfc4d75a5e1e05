"""
Setup configuration for the restprimer package.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="restprimer",
    version="0.1.0",
    author="restprimer contributors",
    author_email="contributors@restprimer.example.com",
    description="Schema-validated REST endpoints with nested routers and a generated OpenAPI document",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/restprimer",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "uvicorn": ["uvicorn>=0.20.0"],
        "dev": [
            "pytest>=6.0",
            "pytest-cov",
            "ruff",
            "mypy",
            "openapi-spec-validator>=0.7.0",
        ],
    },
    project_urls={
        "Bug Reports": "https://github.com/yourusername/restprimer/issues",
        "Source": "https://github.com/yourusername/restprimer",
    },
)
