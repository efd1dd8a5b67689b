# src/todostore/__init__.py

"""Local-first todo tracker backed by an embedded SQLite file."""

__version__ = "0.4.0"
