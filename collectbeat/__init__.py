"""Periodic system data collector built on libbeat."""

__version__ = "0.3.0"
