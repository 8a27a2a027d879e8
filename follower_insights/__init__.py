"""
Follower Insights

Relationship analysis for Instagram follower data exports.
"""

__version__ = "0.1.0"
