"""Taste world: personal taste modelling and intersection playlist generation."""

__version__ = "0.1.0"
