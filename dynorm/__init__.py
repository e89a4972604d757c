"""
dynorm: manifest-driven module installation and a small dynamic record store.
"""

__version__ = "0.3.0"
