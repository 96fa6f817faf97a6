"""SMTP клиент для писем пользователям"""
import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid

logger = logging.getLogger(__name__)


class EmailClient:
    """Отправка писем через SMTP (в отдельном потоке, smtplib синхронный)"""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: int = 30
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str) -> MIMEText:
        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to
        message["Date"] = formatdate(localtime=False)
        message["Message-ID"] = make_msgid()
        return message

    def _send_sync(self, to: str, subject: str, body: str) -> None:
        message = self._build_message(to, subject, body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user:
                server.login(self.user, self.password)
            server.sendmail(self.sender, [to], message.as_string())

    async def send(self, to: str, subject: str, body: str) -> None:
        """Отправляет письмо; ошибки SMTP пробрасываются вызывающему"""
        await asyncio.to_thread(self._send_sync, to, subject, body)
        logger.info(f"📧 Письмо '{subject}' отправлено на {to}")
