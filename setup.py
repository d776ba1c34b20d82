from setuptools import setup, find_packages

setup(
    name="aic-order-selection",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["run_selection"],
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "arch",
        "statsmodels",
        "duckdb",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.9",
)
