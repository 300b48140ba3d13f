"""Behavioral Sandbox: consent-gated, provenance-tracked behavioral signals"""

__version__ = "1.0.0"
