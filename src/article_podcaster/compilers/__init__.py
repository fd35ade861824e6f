"""Compilers for assembling final audio files."""

from .audio_assembler import EXPORT_FORMATS, AudioAssembler

__all__ = ["AudioAssembler", "EXPORT_FORMATS"]
