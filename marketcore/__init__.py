"""
marketcore

Market data ingestion, live bar maintenance, technical indicators and
risk-bounded trade setups for a single instrument.
"""

__version__ = "0.1.0"
