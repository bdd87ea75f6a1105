"""
QR Payments backend.

QRPH payload encoding and the QR payment transaction lifecycle for the POS.
"""
__version__ = "0.1.0"
