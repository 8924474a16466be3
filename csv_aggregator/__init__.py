# csv_aggregator/__init__.py

"""
CSV Aggregator - streaming per-category sums behind an async job engine
"""

__version__ = "1.0.0"
