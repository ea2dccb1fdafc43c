"""I/O utilities for loading robot descriptions.

This module parses URDF robot descriptions into kinematic trees.
"""

from .urdf_parser import load_urdf, parse_urdf

__all__ = ["load_urdf", "parse_urdf"]
