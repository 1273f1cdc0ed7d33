import pytest
import pytest_asyncio
import os
import jwt
from datetime import datetime, timedelta, timezone
from httpx import AsyncClient, ASGITransport
from typing import AsyncGenerator

# Import app from the correct location
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from main import app
from app.models.journal import UserRole
from app.services.workflow import Actor

# === 全局测试配置 ===
# 中文注释:
# 1. 显式使用 pytest_asyncio.fixture 解决 STRICT 模式下的生成器问题。
# 2. 鉴权默认通过 dependency_overrides 注入 Actor，不访问真实 Supabase。
# 3. JWT 令牌生成用于 auth_utils 的测试。


@pytest_asyncio.fixture
async def client() -> AsyncGenerator:
    """
    提供一个模拟的异步测试客户端
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


def generate_test_token(user_id: str = "00000000-0000-0000-0000-000000000000", *, expires_in: int = 3600):
    """
    生成用于测试的JWT令牌（与后端使用同一个 SUPABASE_JWT_SECRET）
    """
    secret = os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")
    now = datetime.now(timezone.utc)

    payload = {
        "sub": user_id,
        "email": "test@example.com",
        "aud": "authenticated",
        "exp": now + timedelta(seconds=expires_in),
        "iat": now,
        "role": "authenticated"
    }

    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_token():
    return generate_test_token()


@pytest.fixture
def expired_token():
    return generate_test_token(expires_in=-3600)


@pytest.fixture
def invalid_token():
    return "invalid.jwt.token"


@pytest.fixture
def as_actor():
    """
    Override get_current_actor for the duration of a test:

        as_actor(7, "reviewer")
    """
    from app.core.roles import get_current_actor

    def _set(user_id: int, role: str) -> Actor:
        actor = Actor(id=user_id, role=UserRole(role))
        app.dependency_overrides[get_current_actor] = lambda: actor
        return actor

    yield _set
    app.dependency_overrides.pop(get_current_actor, None)
