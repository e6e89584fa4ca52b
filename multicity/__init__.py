"""multicity -- asynchronous multi-segment flight search aggregator."""

__version__ = "0.1.0"
