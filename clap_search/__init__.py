"""
Local CLAP embedding index: embed audio files, search them by text or audio.
"""

from .core.config import VERSION

__version__ = VERSION
