# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="conch",
    version="0.1.0",
    description="A Lisp-flavoured Unix shell with an explicit-stack evaluator",
    packages=find_namespace_packages(include=["conch", "conch.*"]),
    package_data={"conch": ["prelude/*.conch"]},
    python_requires=">=3.11",
    install_requires=[],
    extras_require={
        "test": ["pytest", "hypothesis"],
    },
    entry_points={
        "console_scripts": ["conch=conch.cmdline:main"],
    },
    zip_safe=False,
)
