from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="varstar-metric",
    version="0.1.0",
    description="Information-theoretic metric learning for variable-star classification",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["varstar_metric", "varstar_metric.*"]),
    python_requires=">=3.10",
    install_requires=[
        "scikit-learn",
        "numpy>=1.22",
        "pydantic>=2.0",
        "pyyaml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "varstar-metric=varstar_metric.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Astronomy",
        "Programming Language :: Python :: 3.10",
    ],
)
