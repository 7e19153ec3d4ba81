"""
Tests for the flowerscope.inference package.
"""
