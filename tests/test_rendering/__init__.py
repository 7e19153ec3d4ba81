"""
Tests for the flowerscope.rendering package.
"""
