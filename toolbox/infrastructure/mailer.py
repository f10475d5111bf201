"""SMTP 邮件发送"""
import smtplib
from dataclasses import dataclass
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import List, Optional

from bs4 import BeautifulSoup
from loguru import logger


@dataclass
class SmtpConfig:
    """SMTP 连接配置（来自 system_settings 表）"""

    host: Optional[str] = None
    port: int = 587
    secure: bool = False
    user: Optional[str] = None
    password: Optional[str] = None
    from_name: str = "AiQiji工具箱"
    from_email: Optional[str] = None
    enabled: bool = False

    @property
    def sender_address(self) -> Optional[str]:
        return self.from_email or self.user

    @property
    def is_complete(self) -> bool:
        return bool(self.host and self.user and self.password)

    @property
    def use_ssl(self) -> bool:
        return self.port == 465

    @property
    def use_starttls(self) -> bool:
        return not self.use_ssl and (self.secure or self.port in (587, 25))


def html_to_text(html: str) -> str:
    """把 HTML 正文转换为纯文本备用内容"""
    soup = BeautifulSoup(html, "html.parser")
    lines = [line.strip() for line in soup.get_text("\n").splitlines()]
    return "\n".join(line for line in lines if line)


class SmtpMailer:
    """同步 SMTP 发送器，调用方负责放到线程中执行"""

    def __init__(self, config: SmtpConfig, timeout: float = 15.0):
        self.config = config
        self.timeout = timeout

    def build_message(
        self, to: List[str], subject: str, html: str, text: Optional[str] = None
    ) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = str(Header(subject, "utf-8"))
        msg["From"] = formataddr(
            (str(Header(self.config.from_name, "utf-8")), self.config.sender_address)
        )
        msg["To"] = ", ".join(to)
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(text if text is not None else html_to_text(html), "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _connect(self) -> smtplib.SMTP:
        if self.config.use_ssl:
            return smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=self.timeout)
        return smtplib.SMTP(self.config.host, self.config.port, timeout=self.timeout)

    def send(self, to: List[str], subject: str, html: str, text: Optional[str] = None) -> None:
        """
        发送一封邮件，失败时抛出 smtplib.SMTPException / OSError
        """
        if not self.config.is_complete:
            raise RuntimeError("SMTP 配置不完整")

        msg = self.build_message(to, subject, html, text)
        logger.info(f"连接 SMTP 服务器 {self.config.host}:{self.config.port}")
        with self._connect() as server:
            if self.config.use_starttls:
                server.starttls()
            server.login(self.config.user, self.config.password)
            server.send_message(msg)
        logger.info(f"邮件已发送: {subject} -> {', '.join(to)}")

    def verify(self) -> None:
        """仅登录验证 SMTP 配置"""
        with self._connect() as server:
            if self.config.use_starttls:
                server.starttls()
            server.login(self.config.user, self.config.password)
