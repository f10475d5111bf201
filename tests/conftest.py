"""测试公共配置：所有测试使用临时目录下的 SQLite 数据库"""
import asyncio
import os
import tempfile
from pathlib import Path

# 必须在导入 toolbox 之前设置，数据库引擎在模块导入时创建
_TEST_DIR = Path(tempfile.mkdtemp(prefix="toolbox-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'test.db'}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["APP_ENV"] = "test"
os.environ.pop("ADMIN_EMAIL", None)

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from toolbox.db.database import AsyncSessionLocal, create_tables, drop_tables, seed_defaults

API = "/api/v1"


async def reset_database(seed: bool = True):
    await drop_tables()
    await create_tables()
    if seed:
        async with AsyncSessionLocal() as session:
            await seed_defaults(session, seed_tools=False)


@pytest_asyncio.fixture
async def session():
    """空数据库的会话（不写入默认数据）"""
    await reset_database(seed=False)
    async with AsyncSessionLocal() as s:
        yield s


@pytest_asyncio.fixture
async def seeded_session():
    """写入默认设置和默认管理员后的会话"""
    await reset_database(seed=True)
    async with AsyncSessionLocal() as s:
        yield s


@pytest.fixture
def tool_data():
    """构造一份合法的工具数据"""
    def _make(**overrides):
        data = {
            "id": "chatgpt",
            "name": "ChatGPT",
            "description": "OpenAI 推出的 AI 对话助手，支持写作和编程",
            "url": "https://chat.openai.com",
            "category": ["AI"],
            "tags": ["聊天", "写作"],
        }
        data.update(overrides)
        return data
    return _make


@pytest.fixture
def client():
    """
    不触发 lifespan 的测试客户端：不启动调度器，也不写日志文件
    """
    asyncio.run(reset_database(seed=True))
    from toolbox.main import app
    app.state.catalog.invalidate()
    app.state.avatar_service.clear_cache()
    return TestClient(app)


@pytest.fixture
def admin_headers(client):
    resp = client.post(f"{API}/auth/login", json={"username": "admin", "password": "admin123"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}


@pytest.fixture
def user_headers(client, admin_headers):
    resp = client.post(
        f"{API}/auth/register",
        json={"username": "alice", "password": "alice123", "email": "alice@example.com"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    resp = client.post(f"{API}/auth/login", json={"username": "alice", "password": "alice123"})
    return {"Authorization": f"Bearer {resp.json()['data']['token']}"}
