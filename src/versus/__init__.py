"""versus: run interpreter benchmarks side by side and compare them."""

__version__ = "0.1.0"
