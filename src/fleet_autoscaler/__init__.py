"""
Fleet autoscaler: CPU and memory alarms driving shared scaling policies
for a load-balanced compute fleet.
"""

__version__ = "1.0.0"
