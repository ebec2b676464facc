"""
Setup script for the hpcsim package.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="hpcsim",
    version="0.1.0",
    author="Raktim Mondol",
    author_email="raktim.live@gmail.com",
    description="Hierarchical predictive coding for sensorimotor interception under delay, noise and multi-task learning",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Intended Audience :: Science/Research",
    ],
    python_requires=">=3.8",
    install_requires=[
        "torch>=1.9.0",
        "numpy>=1.20.0",
        "matplotlib>=3.4.0",
        "tqdm>=4.60.0",
        "PyYAML>=5.4",
    ],
    extras_require={
        "test": ["pytest>=6.0"],
    },
)
