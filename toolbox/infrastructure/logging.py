"""日志文件配置"""
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
BRIEF_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}"

# 带这些前缀的日志另外写入 scheduler 日志
SCHEDULER_PREFIXES = ["[调度器]", "[友链清理]", "[验证码清理]"]

DEFAULT_LOGS_DIR = Path(__file__).resolve().parents[2] / "logs"


def scheduler_filter(record) -> bool:
    return any(prefix in record["message"] for prefix in SCHEDULER_PREFIXES)


def _file_sinks() -> List[Dict[str, Any]]:
    """app: 全部 INFO；error: 只记 ERROR；scheduler: 只记定时任务相关日志"""
    return [
        {"prefix": "app", "level": "INFO", "retention": "30 days", "filter": None, "format": LOG_FORMAT},
        {"prefix": "error", "level": "ERROR", "retention": "90 days", "filter": None, "format": LOG_FORMAT},
        {"prefix": "scheduler", "level": "INFO", "retention": "90 days",
         "filter": scheduler_filter, "format": BRIEF_FORMAT},
    ]


def setup_logging(logs_dir: Optional[Path] = None) -> List[int]:
    """
    添加按天轮转的文件日志

    Args:
        logs_dir: 日志目录，默认为项目根目录下的 logs/

    Returns:
        新增 sink 的 ID，可用于 logger.remove
    """
    logs_dir = logs_dir or DEFAULT_LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    sink_ids = []
    for sink in _file_sinks():
        sink_ids.append(logger.add(
            logs_dir / f"{sink['prefix']}_{{time:YYYY-MM-DD}}.log",
            rotation="00:00",
            retention=sink["retention"],
            compression="zip",
            encoding="utf-8",
            level=sink["level"],
            filter=sink["filter"],
            format=sink["format"],
            enqueue=True,
        ))

    logger.info(f"日志文件目录: {logs_dir}")
    return sink_ids
