"""
本地启动入口: python -m mealpass
"""

import uvicorn

from .config.settings import settings

if __name__ == "__main__":
    uvicorn.run("mealpass.app:app", host="127.0.0.1", port=8000, reload=settings.debug)
