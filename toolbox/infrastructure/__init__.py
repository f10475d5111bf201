"""基础设施层：日志、调度器、HTTP 重试、邮件发送等底层组件"""

from .logging import setup_logging
from .scheduler import CleanupJob, SchedulerManager

__all__ = ["setup_logging", "CleanupJob", "SchedulerManager"]
