"""
tfm-sync: a synchronization client for TFM audio libraries.
"""

__version__ = "0.3.0"
