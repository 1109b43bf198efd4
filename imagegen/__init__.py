"""
Image generation job service.

Queues generation requests for project work items, runs an external
generator command for each one in a background worker and records the
produced images.
"""

__version__ = "0.1.0"
