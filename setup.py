#!/usr/bin/env python

from setuptools import setup

import djlib

setup(name='djlib',
      version=djlib.VERSION,
      description='The Damgard-Jurik generalized additively homomorphic encryption scheme',
      packages=['djlib'],
      license="2-clause BSD",
      long_description="""Damgard-Jurik public-key encryption over OpenSSL big numbers (through petlib), with addition, multiplication by constants and re-randomization of ciphertexts.""",

      setup_requires=["pytest >= 2.6.4"],
      tests_require=[
            "pytest >= 2.5.0",
            "paver >= 1.2.3",
            "pytest-cov >= 1.8.1",
            ],
      install_requires=[
            "petlib >= 0.0.40",
            "msgpack >= 0.6.0",
            "pytest >= 2.5.0",
      ],
      extras_require={
            "test": [
                  "pytest >= 2.5.0",
                  "pytest-cov >= 1.8.1",
                  "paver >= 1.2.3",
            ],
      },
      zip_safe=False,
)
