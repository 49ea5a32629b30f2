"""Export Sumo Logic search job results to CSV files and object storage."""

__version__ = "0.1.0"
