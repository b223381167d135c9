"""HTTP gateway serving objects and folder archives from an S3 bucket."""

__version__ = "0.1.0"
