from setuptools import find_packages, setup

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="docref",
    version="0.1.0",
    author="",
    author_email="",
    description="Document-store cache storage with reference-based and wildcard invalidation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Database",
    ],
    python_requires=">=3.8",
    install_requires=[
        "pymongo>=4.13",
    ],
    extras_require={
        # Development dependencies
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pytest-asyncio>=0.23.0",
            "freezegun>=1.2.0",
            "black>=23.0.0",
            "isort>=5.0.0",
            "mypy>=1.0.0"
        ],
    },
)
