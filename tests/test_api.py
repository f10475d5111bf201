"""HTTP 接口测试"""
from unittest.mock import AsyncMock, patch

API = "/api/v1"

TOOL = {
    "id": "chatgpt",
    "name": "ChatGPT",
    "description": "OpenAI 推出的 AI 对话助手，支持写作和编程",
    "url": "https://chat.openai.com",
    "category": ["AI"],
    "tags": ["聊天", "写作"],
}


def _create_tool(client, headers, **overrides):
    data = dict(TOOL)
    data.update(overrides)
    return client.post(f"{API}/tools", json=data, headers=headers)


class TestAppBasics:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "服务运行正常"
        assert "uptime" in body

    def test_info(self, client):
        data = client.get(f"{API}/info").json()["data"]
        assert data["name"] == "AiQiji Toolbox API"
        assert data["endpoints"]["tools"] == f"{API}/tools"

    def test_unknown_path(self, client):
        resp = client.get(f"{API}/nothing-here")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": f"路径 {API}/nothing-here 不存在"}

    def test_query_validation_error(self, client):
        resp = client.get(f"{API}/tools", params={"page": 0})
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "输入验证失败"
        assert body["errors"]


class TestAuth:
    """登录与令牌校验"""

    def test_login_failure(self, client):
        resp = client.post(f"{API}/auth/login", json={"username": "admin", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "用户名或密码错误"

    def test_login_requires_fields(self, client):
        resp = client.post(f"{API}/auth/login", json={})
        assert resp.status_code == 400

    def test_me(self, client, admin_headers):
        resp = client.get(f"{API}/auth/me", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["username"] == "admin"
        assert "password_hash" not in resp.json()["data"]["user"]

    def test_missing_and_bad_token(self, client):
        resp = client.get(f"{API}/auth/me")
        assert resp.status_code == 401
        assert resp.json()["message"] == "访问令牌缺失"

        resp = client.get(f"{API}/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "访问令牌无效或已过期"

    def test_register_requires_admin(self, client, user_headers):
        resp = client.post(
            f"{API}/auth/register",
            json={"username": "mallory", "password": "secret1"},
            headers=user_headers,
        )
        assert resp.status_code == 403
        assert resp.json()["message"] == "需要管理员权限"


class TestToolsApi:

    def test_create_requires_admin(self, client, user_headers):
        assert _create_tool(client, {}).status_code == 401
        assert _create_tool(client, user_headers).status_code == 403

    def test_create_and_list(self, client, admin_headers):
        resp = _create_tool(client, admin_headers)
        assert resp.status_code == 201
        assert resp.json()["data"]["tool"]["id"] == "chatgpt"

        resp = _create_tool(client, admin_headers, id="short-desc", description="太短")
        assert resp.status_code == 400
        assert "工具描述长度必须在10-1000个字符之间" in resp.json()["errors"]

        body = client.get(f"{API}/tools", params={"q": "chat"}).json()
        assert [t["id"] for t in body["data"]["tools"]] == ["chatgpt"]
        assert body["data"]["pagination"]["totalItems"] == 1

    def test_inactive_hidden_from_public(self, client, admin_headers):
        _create_tool(client, admin_headers, status="inactive")
        assert client.get(f"{API}/tools", params={"status": "all"}).json()["data"]["tools"] == []
        resp = client.get(f"{API}/tools", params={"status": "all"}, headers=admin_headers)
        assert len(resp.json()["data"]["tools"]) == 1

    def test_quick_search_highlights(self, client, admin_headers):
        _create_tool(client, admin_headers)
        resp = client.get(f"{API}/tools/quick-search", params={"q": "chat"})
        data = resp.json()["data"]
        assert data["total"] == 1
        assert data["tools"][0]["name_highlight"] == "<mark>Chat</mark>GPT"
        assert data["categories"][0] == "全部"

    def test_quick_search_escapes_tool_html(self, client, admin_headers):
        _create_tool(client, admin_headers, name="<img src=x onerror=alert(1)>Chat")
        resp = client.get(f"{API}/tools/quick-search", params={"q": "chat"})
        highlight = resp.json()["data"]["tools"][0]["name_highlight"]
        assert "<img" not in highlight
        assert highlight == "&lt;img src=x onerror=alert(1)&gt;<mark>Chat</mark>"

    def test_detail_click_and_rate(self, client, admin_headers):
        _create_tool(client, admin_headers)
        client.get(f"{API}/tools/chatgpt")
        detail = client.get(f"{API}/tools/chatgpt").json()["data"]["tool"]
        assert detail["view_count"] == 2

        resp = client.post(f"{API}/tools/chatgpt/click")
        assert resp.json()["data"]["click_count"] == 1

        resp = client.post(f"{API}/tools/chatgpt/rate", json={"rating": 5})
        assert resp.json()["data"] == {"averageRating": 5.0, "ratingCount": 1}
        resp = client.post(f"{API}/tools/chatgpt/rate", json={"rating": 9})
        assert resp.status_code == 400

        assert client.get(f"{API}/tools/missing").status_code == 404

    def test_update_and_delete(self, client, admin_headers):
        _create_tool(client, admin_headers)
        resp = client.put(f"{API}/tools/chatgpt", json={"featured": True}, headers=admin_headers)
        assert resp.json()["data"]["tool"]["featured"] is True
        featured = client.get(f"{API}/tools/featured").json()["data"]["tools"]
        assert [t["id"] for t in featured] == ["chatgpt"]

        resp = client.delete(f"{API}/tools/chatgpt", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"{API}/tools/chatgpt").status_code == 404


class TestSettingsApi:

    def test_public_and_website(self, client):
        public = client.get(f"{API}/settings/public").json()["data"]
        assert "site_name" in public
        assert "smtp_pass" not in public
        website = client.get(f"{API}/settings/website").json()["data"]
        assert website["friend_links"] == []

    def test_admin_settings(self, client, admin_headers):
        assert client.get(f"{API}/settings").status_code == 401
        resp = client.put(f"{API}/settings/batch", json={"settings": []}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["message"] == "设置数据格式错误"

        resp = client.put(
            f"{API}/settings/batch",
            json={"settings": [{"setting_key": "site_name", "setting_value": "测试站"}]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert client.get(f"{API}/settings/website").json()["data"]["site_name"] == "测试站"


class TestPublicForms:
    """友链申请、意见反馈、验证码"""

    def test_friend_link_apply(self, client, admin_headers):
        payload = {
            "site_name": "示例博客",
            "site_url": "https://blog.example.com",
            "site_description": "记录前端开发的个人博客",
            "admin_email": "owner@example.com",
        }
        with patch("toolbox.presentation.routes.friend_links.send_email_task", new=AsyncMock()) as task:
            resp = client.post(f"{API}/friend-links/apply", json=payload)
        assert resp.status_code == 201
        assert resp.json()["data"]["status"] == "pending"
        task.assert_called_once()

        resp = client.post(f"{API}/friend-links/apply", json=payload)
        assert resp.status_code == 400

        body = client.get(f"{API}/friend-links/applications", headers=admin_headers).json()
        assert body["data"]["pagination"]["total"] == 1

    def test_feedback_without_code(self, client):
        resp = client.post(f"{API}/feedback/submit", json={
            "name": "读者", "email": "reader@example.com",
            "subject": "建议", "content": "希望增加更多分类",
        })
        assert resp.status_code == 400
        assert resp.json()["message"] == "请填写所有必填字段，包括验证码"

    def test_send_code_when_email_disabled(self, client):
        resp = client.post(f"{API}/email/send-verification",
                           json={"email": "reader@example.com", "type": "feedback"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "邮件功能未启用，请联系管理员"


class TestSubmissionsAndFavorites:

    def test_submit_and_approve(self, client, admin_headers):
        resp = client.post(f"{API}/tool-submissions/submit", json={
            "name": "Notion",
            "description": "集笔记、知识库和任务管理于一体的协作工具",
            "url": "https://notion.so",
            "category": ["效率"],
        })
        assert resp.status_code == 201
        submission = resp.json()["data"]["submission"]

        resp = client.post(
            f"{API}/tool-submissions/admin/submissions/{submission['id']}/review",
            json={"action": "approve"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "工具已通过审核并添加到系统中"
        assert client.get(f"{API}/tools/{submission['tool_id']}").status_code == 200

    def test_favorites(self, client, admin_headers, user_headers):
        assert client.get(f"{API}/favorites").status_code == 401
        _create_tool(client, admin_headers)

        resp = client.post(f"{API}/favorites", json={"tool_id": "chatgpt"}, headers=user_headers)
        assert resp.status_code == 201
        body = client.get(f"{API}/favorites", headers=user_headers).json()["data"]
        assert [t["id"] for t in body["items"]] == ["chatgpt"]
        assert body["pagination"]["totalItems"] == 1

        resp = client.post(f"{API}/favorites", json={"tool_id": "missing"}, headers=user_headers)
        assert resp.status_code == 404


class TestImportAndSeo:

    def test_template_and_export_permission(self, client, user_headers):
        resp = client.get(f"{API}/import/template")
        assert resp.status_code == 200
        assert resp.headers["content-type"].endswith("spreadsheetml.sheet")
        assert client.get(f"{API}/import/export", headers=user_headers).status_code == 403

    def test_sitemap_and_robots(self, client, admin_headers):
        _create_tool(client, admin_headers)
        resp = client.get("/sitemap.xml")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/xml")
        assert "chatgpt" in resp.text

        robots = client.get("/robots.txt").text
        assert "/sitemap.xml" in robots
