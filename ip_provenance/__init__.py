"""
IP Provenance - Sensor Dataset IP Registration and Licensing

Registers agricultural sensor datasets as IP assets, mints paid licenses
against them, derives new assets from licensed parents and moves royalty
payments between parent and derivative assets.
"""

__version__ = "1.0.0"
__author__ = "IP Provenance Team"
__description__ = "Sensor Dataset IP Provenance and Licensing"
