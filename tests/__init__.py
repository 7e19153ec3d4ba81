"""
Test suite for FlowerScope.

Covers:
- Bounded image decoding and tensor encoding
- Output tensor decoding and label lookup
- Analysis session concurrency and failure containment
- Overlay rendering, configuration, reporting and CLI
"""
