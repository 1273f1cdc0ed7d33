"""
兼容入口：`uvicorn app.main:app` 与部分测试使用该路径。

真实 FastAPI 实例定义在 `backend/main.py`（模块名 `main`），这里只做转发。
"""

from main import app

__all__ = ["app"]
