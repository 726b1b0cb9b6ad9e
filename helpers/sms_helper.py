# helpers/sms_helper.py

import asyncio
import logging

import requests

from config.settings import settings

logger = logging.getLogger(__name__)


def send_sms(to_number: str, text: str) -> str:
    """
    Send a text message through the Twilio REST API. Blocking; returns the
    provider message SID.
    """
    if not settings.sms_configured:
        raise RuntimeError("Twilio not configured - check TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_PHONE_NUMBER")

    url = f"{settings.TWILIO_API_URL}/Accounts/{settings.TWILIO_ACCOUNT_SID}/Messages.json"
    response = requests.post(
        url,
        data={"To": to_number, "From": settings.TWILIO_PHONE_NUMBER, "Body": text},
        auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
        timeout=settings.SMS_TIMEOUT,
    )
    if response.status_code >= 400:
        try:
            detail = response.json().get("message", response.text)
        except ValueError:
            detail = response.text
        raise RuntimeError(f"Twilio rejected message ({response.status_code}): {detail}")

    sid = response.json().get("sid")
    logger.info("SMS sent to %s (sid=%s)", to_number, sid)
    return sid


async def send_sms_async(to_number: str, text: str) -> str:
    return await asyncio.to_thread(send_sms, to_number, text)
