"""
mirrorurl package initializer.
Defines package version; the CLI lives in :mod:`mirrorurl.cli`.
"""
__version__ = "0.1.0"
