"""Tune Out: a local internet-radio station library."""

__version__ = "0.1.0"
