import logging
import resend
from starlette.concurrency import run_in_threadpool
from natours.config import Settings

logger = logging.getLogger(__name__)


async def send_email(settings: Settings, to: str, subject: str, html_content: str):
    resend.api_key = settings.resend_api_key
    params = {
        "from": settings.email_from,
        "to": [to],
        "subject": subject,
        "html": html_content,
    }
    result = await run_in_threadpool(resend.Emails.send, params)
    logger.info(f"Email '{subject}' sent to {to}")
    return result


async def send_welcome_email(user: dict, url: str, settings: Settings):
    first_name = user["name"].split(" ")[0]
    html_content = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px">
  <p>Hi {first_name},</p>
  <p>Welcome to Natours, we're glad to have you 🎉🙏</p>
  <p>We're all a big family here, so make sure to upload your user photo so we get to know you a bit better!</p>
  <p><a href="{url}" style="background: #55c57a; color: #fff; padding: 10px 20px; border-radius: 5px; text-decoration: none">Upload user photo</a></p>
  <p>- The Natours team</p>
</div>
""".strip()
    return await send_email(settings, user["email"], "Welcome to the Natours Family!", html_content)


async def send_password_reset_email(user: dict, url: str, settings: Settings):
    first_name = user["name"].split(" ")[0]
    html_content = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px">
  <p>Hi {first_name},</p>
  <p>Forgot your password? Submit a PATCH request with your new password and passwordConfirm to:</p>
  <p><a href="{url}">{url}</a></p>
  <p>If you didn't forget your password, please ignore this email.</p>
</div>
""".strip()
    return await send_email(
        settings, user["email"], "Your password reset token (valid for only 10 minutes)", html_content
    )
