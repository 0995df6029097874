"""
Calc Service - Arithmetic Expression Evaluation Service

Parses and evaluates user-supplied arithmetic expressions with a
recursive-descent parser and keeps a history of every submission with an
explicit pending → succeeded | failed lifecycle.
"""

__version__ = "1.0.0"
__author__ = "Calc Service Team"
