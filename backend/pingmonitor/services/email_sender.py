"""Email sender service - sends failure notifications via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int
    username: str = ""
    password: str = ""
    use_tls: bool = True
    from_address: str = ""
    to_address: str = ""  # Comma-separated list of email addresses

    @property
    def configured(self) -> bool:
        return bool(self.host and self.to_address)


class EmailSenderService:
    """Service for sending email notifications via SMTP."""

    def _parse_recipients(self, to_address: str) -> List[str]:
        """Parse comma-separated email addresses into a list."""
        if not to_address:
            return []
        return [addr.strip() for addr in to_address.split(",") if addr.strip()]

    async def send_email(self, config: EmailConfig, subject: str, body: str) -> bool:
        """Send an email without blocking the event loop.

        Returns True on success, False on failure.
        """
        if not config.configured:
            logger.warning("Email not configured - missing host or to_address")
            return False

        recipients = self._parse_recipients(config.to_address)
        if not recipients:
            logger.warning("No valid recipients found in to_address")
            return False

        return await asyncio.to_thread(self._send_blocking, config, recipients, subject, body)

    def _send_blocking(self, config: EmailConfig, recipients: List[str], subject: str, body: str) -> bool:
        from_addr = config.from_address or config.username

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = ", ".join(recipients)
        msg.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(config.host, config.port, timeout=30) as server:
                if config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if config.username and config.password:
                    server.login(config.username, config.password)
                server.sendmail(from_addr, recipients, msg.as_string())

            logger.info(f"Email sent successfully to {len(recipients)} recipient(s): {subject}")
            return True

        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            return False
        except smtplib.SMTPConnectError as e:
            logger.error(f"Failed to connect to SMTP server {config.host}:{config.port}: {e}")
            return False
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipients refused by server: {e}")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error: {type(e).__name__}: {e}")
            return False
        except OSError as e:
            logger.error(f"Could not reach {config.host}:{config.port}: {e}")
            return False


# Global instance
email_sender_service = EmailSenderService()
