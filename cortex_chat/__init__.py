"""
Cortex Chat - chat session and response-delivery pipeline.
"""

__version__ = "0.1.0"
