"""
Battry - battery diagnostics engine
"""
__version__ = "0.1.0"
