import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Protocol

from app.core.config import settings
from app.models.user import OTPPurpose

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send_code(self, email: str, code: str, purpose: OTPPurpose) -> bool: ...


SUBJECTS = {
    OTPPurpose.SIGNUP: "Verify Your Email Registration",
    OTPPurpose.PASSWORD_RESET: "Reset Your Password",
}

INTROS = {
    OTPPurpose.SIGNUP: "Thank you for signing up! Please verify your email address using the code below:",
    OTPPurpose.PASSWORD_RESET: "You requested to reset your password. Use the code below to proceed:",
}


def render_otp_email(code: str, purpose: OTPPurpose, expire_minutes: int) -> str:
    return f"""
    <html>
    <body>
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2>{SUBJECTS[purpose]}</h2>
            <p>{INTROS[purpose]}</p>
            <div style="background-color: #f0f0f0; padding: 15px; text-align: center; font-size: 24px; font-weight: bold; letter-spacing: 5px; margin: 20px 0;">
                {code}
            </div>
            <p>This code will expire in {expire_minutes} minutes.</p>
            <p>If you didn't request this code, you can safely ignore this email.</p>
        </div>
    </body>
    </html>
    """


class EmailNotifier:
    """Delivers one-time codes over SMTP."""

    def __init__(self, host=None, port=None, username=None, password=None, sender=None, expire_minutes=None):
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.sender = sender if sender is not None else settings.EMAIL_FROM
        self.expire_minutes = expire_minutes or settings.OTP_EXPIRE_MINUTES

    async def send_code(self, email: str, code: str, purpose: OTPPurpose) -> bool:
        purpose = OTPPurpose(purpose)
        if not self.host or not self.sender:
            logger.warning("SMTP not configured, %s code for %s not emailed", purpose.value, email)
            logger.info("OTP for %s: %s", email, code)
            return False

        html_content = render_otp_email(code, purpose, self.expire_minutes)
        loop = asyncio.get_running_loop()
        # smtplib blocks; keep it off the event loop
        return await loop.run_in_executor(None, self.send_email, email, SUBJECTS[purpose], html_content)

    def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        try:
            message = MIMEMultipart()
            message["From"] = self.sender
            message["To"] = to_email
            message["Subject"] = subject

            message.attach(MIMEText(html_content, "html"))

            with smtplib.SMTP(self.host, self.port) as server:
                server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, to_email, message.as_string())

            logger.info("Sent %s to %s", subject, to_email)
            return True
        except (smtplib.SMTPException, OSError):
            logger.exception("Error sending email to %s", to_email)
            return False
