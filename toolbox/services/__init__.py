"""服务层：业务逻辑服务"""

from .email_service import EmailService
from .favorite_service import FavoriteService
from .feedback_service import FeedbackService
from .friend_link_service import FriendLinkService
from .settings_service import SettingsService
from .submission_service import SubmissionService
from .tool_service import ToolService
from .user_service import UserService
from .verification_service import VerificationCodeService

__all__ = [
    "EmailService",
    "FavoriteService",
    "FeedbackService",
    "FriendLinkService",
    "SettingsService",
    "SubmissionService",
    "ToolService",
    "UserService",
    "VerificationCodeService",
]
