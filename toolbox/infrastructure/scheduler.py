"""后台清理任务调度"""
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger


@dataclass
class CleanupJob:
    """一个按 cron 执行的清理任务"""

    job_id: str
    label: str
    func: Callable[[], Awaitable[int]]
    cron: str


class SchedulerManager:
    """持有 AsyncIOScheduler，负责注册清理任务、启动和关闭"""

    def __init__(self, timezone: str = "Asia/Shanghai"):
        self.timezone = timezone
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _trigger(self, cron: str) -> CronTrigger:
        return CronTrigger.from_crontab(cron, timezone=self.timezone)

    def start(self, jobs: List[CleanupJob]) -> None:
        """
        注册全部清理任务并启动调度器

        重复调用会先关闭旧的调度器。错过的执行合并为一次，宽限 10 分钟。
        """
        if self.running:
            logger.warning("[调度器] 已有调度器在运行，先关闭旧实例")
            self.shutdown(wait=False)

        scheduler = AsyncIOScheduler(timezone=self.timezone)
        for job in jobs:
            scheduler.add_job(
                job.func,
                trigger=self._trigger(job.cron),
                id=job.job_id,
                name=job.label,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
                misfire_grace_time=600,
            )
            logger.info(f"[调度器] 注册{job.label}任务 {job.job_id}，cron: {job.cron!r}")

        scheduler.start()
        self._scheduler = scheduler
        for job in scheduler.get_jobs():
            logger.info(f"[调度器]   - {job.id}: 下次执行 {job.next_run_time}")

    def job_ids(self) -> List[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler is None:
            return
        try:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=wait)
                logger.info("[调度器] 调度器已关闭")
        except Exception as e:
            logger.error(f"[调度器] 关闭调度器时出错: {e}")
        finally:
            self._scheduler = None
