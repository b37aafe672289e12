#!/usr/bin/env python

import os.path
from setuptools import setup

from pysubpipe import __version__

# We use the README as the long_description
readme = open(os.path.join(os.path.dirname(__file__), "README.rst")).read()

setup(
    name="pysubpipe",
    version=__version__,
    author="Adam Hooper",
    author_email="adam@adamhooper.com",
    url="https://github.com/CJWorkbench/pysubpipe",
    description="Drive child processes through pipes: timeouts, exact-length reads, clean kills.",
    long_description=readme,
    long_description_content_type="text/x-rst",
    license="BSD",
    zip_safe=True,
    packages=["pysubpipe"],
    install_requires=[],
    extras_require={
        "tests": ["pytest~=8.0", "pytest-timeout~=2.3"],
        "docs": ["sphinx", "sphinx-autodoc-typehints"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: BSD License",
        "Operating System :: POSIX",
        "Operating System :: Microsoft :: Windows",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
    ],
)
