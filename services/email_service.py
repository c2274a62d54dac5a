import html
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Transactional email for SAKAN, sent through SendGrid.
    Without SENDGRID_API_KEY / MAIL_FROM the messages are only logged.
    """

    def __init__(self, api_key: Optional[str] = None, sender_email: Optional[str] = None):
        self.sendgrid_api_key = api_key
        self.sender_email = sender_email

        self.enabled = bool(self.sendgrid_api_key and self.sender_email)
        if not self.enabled:
            logger.warning("📧 Email service not configured. Missing SENDGRID_API_KEY or MAIL_FROM.")
        else:
            logger.info("📧 Email service configured and ready. Sender: %s", self.sender_email)

    def _send(self, to_email: str, subject: str, html_content: str) -> bool:
        try:
            message = Mail(
                from_email=self.sender_email,
                to_emails=to_email,
                subject=subject,
                html_content=html_content,
            )
            sg = SendGridAPIClient(self.sendgrid_api_key)
            response = sg.send(message)
            logger.info("✅ Email '%s' sent to %s. Status: %s", subject, to_email, response.status_code)
            return True
        except Exception as e:
            logger.exception("❌ Failed to send email to %s: %s", to_email, e)
            return False

    # ============================================================
    # ✅ Access code (synchronous for BackgroundTasks)
    # ============================================================
    def send_access_code_email(
        self,
        to_email: str,
        code: str,
        residence_name: str,
        action_type: str,
        sent_by: str = "Your syndic",
        ttl_days: int = 7,
    ) -> bool:
        """Sends the successor the code they must enter after signing in."""
        signin_link = f"{settings.FRONTEND_URL.rstrip('/')}/signin"

        if not self.enabled:
            # Development fallback (no SendGrid setup)
            logger.info("📨 [Mock Email] To: %s", to_email)
            logger.info("Code: %s | Residence: %s | Action: %s", code, residence_name, action_type)
            return True

        subject = f"🔑 You have been chosen as the new syndic of {residence_name} on SAKAN"
        safe_sender = html.escape(sent_by or "")
        safe_residence = html.escape(residence_name or "")

        html_content = f"""
        <div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>👋 Hello!</h2>
            <p><strong>{safe_sender}</strong> would like you to take over the management of
            <strong>{safe_residence}</strong> on <b>SAKAN</b>.</p>

            <p>Sign in with this email address and enter the following access code:</p>

            <p style="text-align: center; margin: 20px 0; font-size: 28px; letter-spacing: 6px;">
                <strong>{code}</strong>
            </p>

            <p style="text-align: center; margin: 20px 0;">
                <a href="{signin_link}" style="
                    background-color: #4F46E5;
                    color: white;
                    padding: 12px 28px;
                    text-decoration: none;
                    border-radius: 6px;
                    font-weight: bold;
                    display: inline-block;
                ">Sign in to SAKAN</a>
            </p>

            <p><small>This code can be used once and expires in {ttl_days} days.
            After 3 attempts with a different email address it is deleted.</small></p>
            <hr style="border:none; border-top:1px solid #eee; margin: 24px 0;">
            <p>Best regards,<br><strong>The SAKAN Team</strong></p>
        </div>
        """
        return self._send(to_email, subject, html_content)


# ============================================================
# ✅ Global instance for app-wide import
# ============================================================
email_service = EmailService(settings.SENDGRID_API_KEY, settings.MAIL_FROM)
