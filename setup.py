from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="sddmmflow",
    version="0.1.0",
    description="Sampled dense-dense matrix multiplication (SDDMM) kernels and benchmarks for GPUs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["sddmmflow", "sddmmflow.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    python_requires=">=3.9",
    install_requires=[
        "torch>=2.0.0",
        "numpy>=1.20.0",
        "scipy>=1.8.0",
        "triton>=2.1.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "sddmmflow-bench=sddmmflow.cli:main",
        ],
    },
    keywords="gpu sparse sddmm cuda triton benchmark gnn attention",
)
