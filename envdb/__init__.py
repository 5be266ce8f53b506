"""
envdb - node registry for agents connected to a controlling server.
"""

__version__ = "0.1.0"
