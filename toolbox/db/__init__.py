"""数据库模块"""
from .database import AsyncSessionLocal, get_db, init_db
from .models import (
    Base,
    EmailLog,
    EmailTemplate,
    Favorite,
    FriendLinkApplication,
    SystemSetting,
    Tool,
    ToolSubmission,
    User,
    VerificationCode,
)

__all__ = [
    "AsyncSessionLocal",
    "get_db",
    "init_db",
    "Base",
    "EmailLog",
    "EmailTemplate",
    "Favorite",
    "FriendLinkApplication",
    "SystemSetting",
    "Tool",
    "ToolSubmission",
    "User",
    "VerificationCode",
]
