"""Lowering and rendering.

Recognized forms are lowered to a short list of ops first, and only then
rendered as Python source, so the evaluation order can be checked without
looking at generated text.
"""
