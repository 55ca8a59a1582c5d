"""Aggregator CLI - content discovery scheduling for the AI Information Aggregator."""

__app_name__ = "aggregator"
__version__ = "0.1.0"
