"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import catering, meals, participants

api_router = APIRouter()

# 包含所有v1路由
api_router.include_router(meals.router, tags=["餐次"])
api_router.include_router(participants.router, tags=["参与者餐次"])
api_router.include_router(catering.router, tags=["备餐报表"])
