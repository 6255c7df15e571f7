"""
Mirror Optimization — Rank pacman mirrors and manage the mirrorlist.

This package provides mirror ranking (delegated to reflector, with a
manual speed-test fallback), the guarded mirrorlist store, and backups.
"""

__version__ = "0.1.0"
