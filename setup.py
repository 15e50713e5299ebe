# -*- coding: utf-8 -*-

import setuptools

setuptools.setup(
    name="nionbuilder",
    version="0.1.0",
    author="Nion Software",
    author_email="swift@nion.com",
    description="Build object graphs from declarative node trees.",
    url="https://github.com/nion-software/nionui",
    packages=["nion.builder", "nion.builder.test"],
    install_requires=['nionutils>=0.4.0'],
    license='Apache 2.0',
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3.10",
    ],
    python_requires='>=3.10',
    test_suite="nion.builder.test",
)
