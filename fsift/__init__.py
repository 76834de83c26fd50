# Copyright Red Hat
#
# fsift/__init__.py - File Sifter package initialisation
#
# This file is part of the fsift project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Fsift top-level package.
"""
from ._fsift import *  # noqa: F401, F403
from ._fsift import __all__  # noqa: F401

__version__ = "0.1.0"
