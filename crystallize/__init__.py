"""Crystallize — a research assistant that distills answers into a knowledge base."""

__version__ = "0.1.0"
