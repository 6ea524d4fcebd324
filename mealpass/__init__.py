"""
MealPass: 活动餐次权益与核销引擎
"""

__version__ = "1.0.0"
