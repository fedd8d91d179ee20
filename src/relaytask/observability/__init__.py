"""
observability/ — structlog configuration
"""
