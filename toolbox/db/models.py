"""数据库模型"""
import secrets
import uuid
from datetime import datetime, timedelta

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

TOOL_CATEGORIES = ["AI", "效率", "设计", "开发", "其他"]
ICON_THEMES = ["auto", "auto-light", "auto-dark", "light", "dark", "none"]
TOOL_STATUSES = ["active", "inactive", "maintenance"]
USER_ROLES = ["admin", "user"]
USER_STATUSES = ["active", "inactive", "suspended"]
SETTING_TYPES = ["string", "number", "boolean", "json"]
APPLICATION_STATUSES = ["pending", "approved", "rejected", "expired"]
SUBMISSION_STATUSES = ["pending", "approved", "rejected", "processing"]
CODE_TYPES = ["register", "login", "reset_password", "email_change", "feedback"]

MAX_LOGIN_ATTEMPTS = 5
LOCK_MINUTES = 30
APPLICATION_EXPIRE_DAYS = 30


def _uuid() -> str:
    return str(uuid.uuid4())


def _token() -> str:
    return secrets.token_hex(32)


def _application_expiry() -> datetime:
    return datetime.now() + timedelta(days=APPLICATION_EXPIRE_DAYS)


def _iso(value):
    return value.isoformat() if value else None


class Tool(Base):
    """工具表"""
    __tablename__ = "tools"
    __mapper_args__ = {"eager_defaults": True}  # flush 时一并取回数据库生成的时间字段

    id = Column(String(100), primary_key=True)  # 形如 chatgpt / figma-web
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    icon = Column(String(100), default="Tool")  # Lucide 图标名
    icon_url = Column(String(500))
    icon_file = Column(String(255))  # 本地上传的图标文件名
    icon_theme = Column(String(20), default="auto")
    category = Column(JSON, nullable=False, default=list)  # 分类列表
    tags = Column(JSON, default=list)
    url = Column(String(500), nullable=False)
    featured = Column(Boolean, default=False, index=True)
    status = Column(String(20), default="active", index=True)
    view_count = Column(Integer, default=0)
    click_count = Column(Integer, default=0)
    rating_sum = Column(Integer, default=0)
    rating_count = Column(Integer, default=0)
    sort_order = Column(Integer, default=0, index=True)
    content = Column(Text)  # 详情页富文本
    needs_vpn = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def average_rating(self) -> float:
        count = self.rating_count or 0
        if count <= 0:
            return 0.0
        return round((self.rating_sum or 0) / max(count, 1), 1)

    def add_rating(self, rating: int) -> None:
        if not isinstance(rating, int) or isinstance(rating, bool) or rating < 1 or rating > 5:
            raise ValueError("评分必须在1-5之间")
        self.rating_sum = (self.rating_sum or 0) + rating
        self.rating_count = (self.rating_count or 0) + 1

    @property
    def categories(self) -> list:
        if isinstance(self.category, list):
            return self.category
        return [self.category] if self.category else []

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "icon_url": self.icon_url,
            "icon_file": self.icon_file,
            "icon_theme": self.icon_theme,
            "category": self.categories,
            "tags": self.tags or [],
            "url": self.url,
            "featured": bool(self.featured),
            "status": self.status,
            "view_count": self.view_count or 0,
            "click_count": self.click_count or 0,
            "rating_count": self.rating_count or 0,
            "average_rating": self.average_rating,
            "sort_order": self.sort_order or 0,
            "content": self.content,
            "needs_vpn": bool(self.needs_vpn),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class User(Base):
    """用户表"""
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(50), unique=True, nullable=False, index=True)  # 统一小写
    email = Column(String(255), unique=True, nullable=True, index=True)
    display_name = Column(String(100))
    avatar_url = Column(String(500))
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default="user")
    status = Column(String(20), default="active")
    last_login_at = Column(DateTime)
    login_attempts = Column(Integer, default=0)
    locked_until = Column(DateTime)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def is_locked(self, now: datetime = None) -> bool:
        now = now or datetime.now()
        return bool(self.locked_until and self.locked_until > now)

    def register_failed_login(self, now: datetime = None) -> None:
        now = now or datetime.now()
        # 锁定已过期，从头计数
        if self.locked_until and self.locked_until <= now:
            self.login_attempts = 1
            self.locked_until = None
            return
        self.login_attempts = (self.login_attempts or 0) + 1
        if self.login_attempts >= MAX_LOGIN_ATTEMPTS:
            self.locked_until = now + timedelta(minutes=LOCK_MINUTES)

    def register_successful_login(self, now: datetime = None) -> None:
        self.login_attempts = 0
        self.locked_until = None
        self.last_login_at = now or datetime.now()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "role": self.role,
            "status": self.status,
            "last_login_at": _iso(self.last_login_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class SystemSetting(Base):
    """系统设置表"""
    __tablename__ = "system_settings"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    setting_key = Column(String(100), unique=True, nullable=False, index=True)
    setting_value = Column(Text)  # 统一以字符串保存
    setting_type = Column(String(20), default="string")
    description = Column(String(255))
    category = Column(String(50), default="general")  # website / email / general
    is_public = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class FriendLinkApplication(Base):
    """友链申请表"""
    __tablename__ = "friend_link_applications"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String(36), primary_key=True, default=_uuid)
    site_name = Column(String(100), nullable=False)
    site_url = Column(String(500), nullable=False, index=True)
    site_description = Column(Text, nullable=False)
    site_icon = Column(String(500))
    admin_email = Column(String(255), nullable=False, index=True)
    admin_qq = Column(String(20))
    status = Column(String(20), default="pending", index=True)
    admin_note = Column(Text)  # 管理员处理备注
    processed_by = Column(String(36))
    processed_at = Column(DateTime)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    verification_token = Column(String(64), default=_token)
    expires_at = Column(DateTime, default=_application_expiry)
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def is_expired(self, now: datetime = None) -> bool:
        now = now or datetime.now()
        return bool(self.expires_at and self.expires_at < now)

    def to_dict(self) -> dict:
        # user_agent 与 verification_token 不对外返回
        return {
            "id": self.id,
            "site_name": self.site_name,
            "site_url": self.site_url,
            "site_description": self.site_description,
            "site_icon": self.site_icon,
            "admin_email": self.admin_email,
            "admin_qq": self.admin_qq,
            "status": self.status,
            "admin_note": self.admin_note,
            "processed_by": self.processed_by,
            "processed_at": _iso(self.processed_at),
            "ip_address": self.ip_address,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class VerificationCode(Base):
    """邮箱验证码表"""
    __tablename__ = "verification_codes"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    code_hash = Column(String(255), nullable=False)  # 只保存哈希
    type = Column(String(30), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, default=False)
    used_at = Column(DateTime)
    ip_address = Column(String(45))
    created_at = Column(DateTime, default=func.now(), index=True)


class EmailTemplate(Base):
    """邮件模板表"""
    __tablename__ = "email_templates"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    subject = Column(String(255), nullable=False)
    html = Column(Text, nullable=False)  # jinja2 模板
    text = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "subject": self.subject,
            "html": self.html,
            "text": self.text,
            "is_active": bool(self.is_active),
        }


class EmailLog(Base):
    """群发邮件记录表"""
    __tablename__ = "email_logs"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipients = Column(JSON, nullable=False)
    subject = Column(String(255), nullable=False)
    html = Column(Text)
    text = Column(Text)
    status = Column(String(20), default="success")  # success / partial / failed
    success_count = Column(Integer, default=0)
    fail_count = Column(Integer, default=0)
    error = Column(Text)
    sent_by = Column(String(36))
    created_at = Column(DateTime, default=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipients": self.recipients or [],
            "subject": self.subject,
            "status": self.status,
            "success_count": self.success_count or 0,
            "fail_count": self.fail_count or 0,
            "error": self.error,
            "created_at": _iso(self.created_at),
        }


class ToolSubmission(Base):
    """用户提交的工具（待审核）"""
    __tablename__ = "tool_submissions"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    tool_id = Column(String(100), nullable=False)  # 通过后使用的工具ID
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    url = Column(String(500), nullable=False)
    category = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, default=list)
    icon = Column(String(100), default="Tool")
    icon_url = Column(String(500))
    icon_file = Column(String(255))
    icon_theme = Column(String(20), default="auto-dark")
    submitter_name = Column(String(100))
    submitter_email = Column(String(255))
    submitter_contact = Column(String(255))
    status = Column(String(20), default="pending", index=True)
    reviewer_id = Column(String(36))
    review_comment = Column(Text)
    reviewed_at = Column(DateTime)
    priority = Column(Integer, default=0)
    source = Column(String(50), default="user_submit")
    additional_info = Column(JSON)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def to_tool_data(self) -> dict:
        """审核通过时转换为工具数据"""
        return {
            "id": self.tool_id,
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "category": self.category or ["其他"],
            "tags": self.tags or [],
            "icon": self.icon or "Tool",
            "icon_url": self.icon_url,
            "icon_file": self.icon_file,
            "icon_theme": self.icon_theme or "auto-dark",
            "featured": False,
            "status": "active",
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tool_id": self.tool_id,
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "category": self.category or [],
            "tags": self.tags or [],
            "icon": self.icon,
            "icon_url": self.icon_url,
            "icon_file": self.icon_file,
            "icon_theme": self.icon_theme,
            "submitter_name": self.submitter_name,
            "submitter_email": self.submitter_email,
            "submitter_contact": self.submitter_contact,
            "status": self.status,
            "reviewer_id": self.reviewer_id,
            "review_comment": self.review_comment,
            "reviewed_at": _iso(self.reviewed_at),
            "priority": self.priority or 0,
            "source": self.source,
            "additional_info": self.additional_info,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Favorite(Base):
    """用户收藏表"""
    __tablename__ = "favorites"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (UniqueConstraint("user_id", "tool_id", name="uq_favorite_user_tool"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tool_id = Column(String(100), ForeignKey("tools.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=func.now(), index=True)
