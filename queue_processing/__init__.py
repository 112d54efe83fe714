"""
Queue processing service construction for ECS.

This package resolves the task definition for a queue consumer service,
reconciles its legacy sizing parameters and attaches queue-depth and CPU
based autoscaling to the created service.
"""

__version__ = "0.1.0"
