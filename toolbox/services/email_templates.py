"""内置邮件模板（jinja2，自动转义）"""
from typing import Any, Dict, Tuple

from jinja2 import DictLoader, select_autoescape
from jinja2.sandbox import SandboxedEnvironment

_LAYOUT = """\
<!DOCTYPE html>
<html lang="zh-CN">
<head><meta charset="utf-8"><title>{{ subject }}</title></head>
<body style="margin:0;padding:0;background:#f6f7fb;font-family:Arial,'Helvetica Neue',sans-serif;color:#1f2937;">
  <div style="max-width:640px;margin:32px auto;background:#fff;border-radius:12px;padding:28px;">
    <h1 style="font-size:20px;margin:0 0 16px;">{% block title %}{% endblock %}</h1>
    {% block body %}{% endblock %}
    <p style="color:#6b7280;font-size:12px;margin-top:24px;">
      - {% if site_url %}<a href="{{ site_url }}">{{ site_name }}</a>{% else %}{{ site_name }}{% endif %}
    </p>
  </div>
</body>
</html>
"""

_TEMPLATES = {
    "layout.html": _LAYOUT,
    "verification_code.html": """\
{% extends "layout.html" %}
{% block title %}{{ type_name }}验证码{% endblock %}
{% block body %}
<p>您正在进行{{ type_name }}操作，验证码为：</p>
<p style="font-size:28px;letter-spacing:6px;font-weight:bold;">{{ code }}</p>
<p>验证码 {{ expiry_minutes }} 分钟内有效，请勿泄露给他人。如非本人操作请忽略此邮件。</p>
{% endblock %}
""",
    "test_email.html": """\
{% extends "layout.html" %}
{% block title %}邮件配置测试{% endblock %}
{% block body %}
<p>{{ message }}</p>
<p style="color:#6b7280;font-size:12px;">发送时间：{{ sent_at }}</p>
{% endblock %}
""",
    "friend_link_admin.html": """\
{% extends "layout.html" %}
{% block title %}收到新的友链申请{% endblock %}
{% block body %}
<p>网站名称：{{ app.site_name }}</p>
<p>网站地址：<a href="{{ app.site_url }}">{{ app.site_url }}</a></p>
<p>网站描述：{{ app.site_description }}</p>
<p>联系邮箱：{{ app.admin_email }}</p>
{% if app.admin_qq %}<p>QQ：{{ app.admin_qq }}</p>{% endif %}
<p>请登录后台审核该申请。</p>
{% endblock %}
""",
    "friend_link_receipt.html": """\
{% extends "layout.html" %}
{% block title %}友链申请已接收{% endblock %}
{% block body %}
<p>您好，您为「{{ app.site_name }}」提交的友链申请已收到，我们会尽快审核。</p>
<p>审核结果将通过邮件通知您。</p>
{% endblock %}
""",
    "friend_link_decision_admin.html": """\
{% extends "layout.html" %}
{% block title %}友链申请已{{ '通过' if approved else '拒绝' }}{% endblock %}
{% block body %}
<p>网站：{{ app.site_name }}（{{ app.site_url }}）</p>
{% if note %}<p>备注：{{ note }}</p>{% endif %}
{% endblock %}
""",
    "friend_link_decision_applicant.html": """\
{% extends "layout.html" %}
{% block title %}友链申请结果{% endblock %}
{% block body %}
{% if approved %}
<p>恭喜，您为「{{ app.site_name }}」提交的友链申请已通过审核。</p>
{% else %}
<p>很遗憾，您为「{{ app.site_name }}」提交的友链申请未通过审核。</p>
{% endif %}
{% if note %}<p>管理员备注：{{ note }}</p>{% endif %}
{% endblock %}
""",
    "feedback_admin.html": """\
{% extends "layout.html" %}
{% block title %}收到新的意见反馈{% endblock %}
{% block body %}
<p>反馈主题：{{ feedback.subject }}</p>
<p>反馈人：{{ feedback.name }}</p>
<p>联系邮箱：{{ feedback.email }}</p>
<div style="white-space:pre-wrap;background:#f9fafb;border:1px solid #e5e7eb;border-radius:10px;padding:18px;">{{ feedback.content }}</div>
{% endblock %}
""",
    "feedback_success.html": """\
{% extends "layout.html" %}
{% block title %}意见反馈已提交成功{% endblock %}
{% block body %}
<p>{{ feedback.name }}，您好：感谢您的反馈，我们已收到您的意见并会尽快处理。</p>
<p>反馈主题：{{ feedback.subject }}</p>
<div style="white-space:pre-wrap;background:#f9fafb;border:1px solid #e5e7eb;border-radius:10px;padding:18px;">{{ feedback.content }}</div>
{% endblock %}
""",
}

env = SandboxedEnvironment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(default=True, default_for_string=True),
)
# 邮件主题是纯文本，不做 HTML 转义
subject_env = SandboxedEnvironment()

SUBJECTS = {
    "verification_code.html": "您的{type_name}验证码 - {site_name}",
    "test_email.html": "{site_name} - 邮件配置测试",
    "friend_link_admin.html": "新友链申请：{site_label}",
    "friend_link_receipt.html": "{site_name} - 友链申请已接收",
    "friend_link_decision_admin.html": "友链申请已{decision_label}：{site_label}",
    "friend_link_decision_applicant.html": "{site_name} - 您的友链申请已{decision_label_applicant}",
    "feedback_admin.html": "新意见反馈：{feedback_subject}",
    "feedback_success.html": "{site_name} - 您的意见反馈已提交成功",
}


def render(name: str, subject_vars: Dict[str, Any], **context: Any) -> Tuple[str, str]:
    """渲染内置模板，返回 (主题, HTML)"""
    subject = SUBJECTS[name].format(**subject_vars)
    html = env.get_template(name).render(subject=subject, **context)
    return subject, html


def render_custom(subject: str, html: str, context: Dict[str, Any]) -> Tuple[str, str]:
    """渲染数据库中保存的自定义模板（沙箱环境，模板内无法访问下划线属性）"""
    return (
        subject_env.from_string(subject).render(**context),
        env.from_string(html).render(**context),
    )
