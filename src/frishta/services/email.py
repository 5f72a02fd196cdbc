"""Email service for sending transactional emails."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import aiosmtplib
import httpx

from frishta.config import settings
from frishta.services.catalog import Song

logger = logging.getLogger(__name__)


class EmailBackend(ABC):
    """Abstract base class for email backends."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        """Send an email.

        Args:
            to: Recipient email address
            subject: Email subject
            html: HTML content
            text: Plain text content (optional, derived from html if not provided)

        Returns:
            True if sent successfully
        """
        pass


class ConsoleEmailBackend(EmailBackend):
    """Email backend that logs to console (for development)."""

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        """Log the envelope instead of sending.

        Bodies are never logged: they carry one-time codes.
        """
        logger.info(f"EMAIL (console backend - not sent) To: {to} Subject: {subject}")
        return True


class SMTPEmailBackend(EmailBackend):
    """Email backend using SMTP."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
        reply_to: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.reply_to = reply_to

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        """Send email via SMTP."""
        message = MIMEMultipart("alternative")
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        if self.reply_to:
            message["Reply-To"] = self.reply_to

        if text:
            message.attach(MIMEText(text, "plain"))

        message.attach(MIMEText(html, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
            )
            logger.info(f"Email sent via SMTP to {to}")
            return True
        except Exception as e:
            logger.error(f"Failed to send email via SMTP to {to}: {e}")
            return False


class ResendEmailBackend(EmailBackend):
    """Email backend using Resend API."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        reply_to: str = "",
        base_url: str = "https://api.resend.com",
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.reply_to = reply_to
        self.base_url = base_url.rstrip("/")

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        """Send email via Resend API."""
        if not self.api_key:
            logger.error(f"Cannot send email to {to}: RESEND_API_KEY is not set")
            return False

        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        if self.reply_to:
            payload["reply_to"] = self.reply_to

        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    f"{self.base_url}/emails",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                    timeout=30.0,
                )
                response.raise_for_status()
                logger.info(f"Email sent via Resend to {to}")
                return True
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"Resend API error: {e.response.status_code} - {_resend_error_message(e.response)}"
                )
                return False
            except Exception as e:
                logger.error(f"Failed to send email via Resend to {to}: {e}")
                return False


def _resend_error_message(response: httpx.Response) -> str:
    """Pull the provider's message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text

    if isinstance(data, dict):
        errors = data.get("errors")
        if data.get("message"):
            return str(data["message"])
        if data.get("error"):
            return str(data["error"])
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("message", ""))
    return response.text


def get_email_backend() -> EmailBackend:
    """Get the configured email backend."""
    if settings.email_backend == "console":
        return ConsoleEmailBackend()
    elif settings.email_backend == "smtp":
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.email_from,
            reply_to=settings.email_reply_to,
        )
    elif settings.email_backend == "resend":
        return ResendEmailBackend(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
            reply_to=settings.email_reply_to,
            base_url=settings.resend_api_base_url,
        )
    else:
        raise ValueError(f"Unknown email backend: {settings.email_backend}")


def _song_lines(songs: Sequence[Song]) -> list[str]:
    if not songs:
        return ["No songs available yet for your selected categories."]

    lines = []
    for index, song in enumerate(songs, start=1):
        url = song.audio_url or song.audio_path
        line = f"{index}. {song.title or 'Untitled'} [{song.category}]"
        if url:
            line += f"\n   {url}"
        lines.append(line)
    return lines


def _song_items_html(songs: Sequence[Song]) -> str:
    if not songs:
        return "<li>No songs available yet for your selected categories.</li>"

    items = []
    for song in songs:
        title = escape(song.title or "Untitled")
        category = escape(song.category)
        url = song.audio_url or song.audio_path
        if url:
            items.append(
                f'<li><strong>{title}</strong> <em>[{category}]</em> - '
                f'<a href="{escape(url)}">Listen</a></li>'
            )
        else:
            items.append(f"<li><strong>{title}</strong> <em>[{category}]</em></li>")
    return "".join(items)


class EmailService:
    """High-level email service for sending application emails."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        """Lazy-load the backend."""
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def send_otp(self, to: str, code: str) -> bool:
        """Send an email verification code.

        Args:
            to: Recipient email address
            code: The plain one-time code

        Returns:
            True if sent successfully
        """
        expiry = settings.otp_expiry_minutes
        subject = "Frishta Email Verification OTP"

        html = (
            '<div style="font-family:Arial,sans-serif;line-height:1.5">'
            "<h2>Frishta Email Verification</h2>"
            "<p>Your OTP is:</p>"
            f'<p style="font-size:24px;font-weight:700;letter-spacing:2px">{escape(code)}</p>'
            f"<p>This OTP expires in {expiry} minutes.</p>"
            "<p>If you did not request this, you can ignore this email.</p>"
            "</div>"
        )
        text = f"Your Frishta OTP is {code}. It expires in {expiry} minutes."

        return await self.backend.send(to=to, subject=subject, html=html, text=text)

    async def send_welcome(
        self,
        to: str,
        name: str,
        categories: Sequence[str],
        songs: Sequence[Song],
    ) -> bool:
        """Send the post-verification welcome email with songs for the user's categories.

        Returns:
            True if sent successfully
        """
        user_name = name or "Frishta User"
        subject = "Welcome to Frishta - Your Category Songs"

        category_lines = [f"- {category}" for category in categories] or ["- None selected"]
        text = "\n".join(
            [
                f"Hi {user_name},",
                "",
                "Your account is verified successfully.",
                "",
                "Your selected categories:",
                *category_lines,
                "",
                "Songs for your categories:",
                *_song_lines(songs),
                "",
                "Enjoy your music journey with Frishta.",
            ]
        )

        if categories:
            categories_html = "<ul>" + "".join(f"<li>{escape(c)}</li>" for c in categories) + "</ul>"
        else:
            categories_html = "<p>None selected.</p>"

        html = (
            '<div style="font-family:Arial,sans-serif;line-height:1.5">'
            f"<h2>Welcome to Frishta, {escape(user_name)}!</h2>"
            "<p>Your account is verified successfully.</p>"
            "<h3>Your selected categories</h3>"
            f"{categories_html}"
            "<h3>Suggested songs for you</h3>"
            f"<ol>{_song_items_html(songs)}</ol>"
            "<p>Enjoy your music journey with Frishta.</p>"
            "</div>"
        )

        return await self.backend.send(to=to, subject=subject, html=html, text=text)


# Global email service instance
email_service = EmailService()
