"""Transformers for converting extracted content into synthesis input."""

from .text_normalizer import clean, decode_entities, split_into_paragraphs

__all__ = ["clean", "decode_entities", "split_into_paragraphs"]
