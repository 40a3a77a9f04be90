"""
Quote Relay
A traced AWS Lambda function that fetches a random quote and forwards it to a sink.
"""

__version__ = "0.1.0"
__author__ = "Observability Team"
