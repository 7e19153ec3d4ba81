"""
Tests for the flowerscope.imaging package.
"""
