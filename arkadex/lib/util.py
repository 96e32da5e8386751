# -*- coding: utf-8 -*-

"""Miscellaneous utility classes and functions."""

import logging
import sys


def class_logger(path, classname):
    """Return a hierarchical logger for a class."""
    return logging.getLogger(path).getChild(classname)


def setup_logging(level="info"):
    """Configure the root handler once for command-line and test use."""
    logging.basicConfig(
        stream=sys.stderr,
        level=level.upper(),
        format="%(levelname)s:%(name)s:%(message)s",
    )
