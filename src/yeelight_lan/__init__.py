"""Local network discovery and control of Yeelight smart bulbs."""

__version__ = "0.1.0"
