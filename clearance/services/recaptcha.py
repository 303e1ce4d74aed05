"""
Smart Clearance
reCAPTCHA verification gateway.

Posts the client token to RECAPTCHA_VERIFY_URL and returns the provider's
JSON verdict. Transport failures are reported as a failed verdict with the
``network-error`` code rather than raised, so signup answers 400 instead of 500.
"""

from __future__ import annotations

import logging

import requests
from flask import current_app

logger = logging.getLogger(__name__)

NETWORK_ERROR = {"success": False, "error-codes": ["network-error"]}


def verify_recaptcha(token: str, remote_ip: str | None = None) -> dict:
    """Verify a reCAPTCHA token. Returns a dict with at least ``success``."""
    payload = {
        "secret": current_app.config.get("RECAPTCHA_SECRET_KEY", ""),
        "response": token,
    }
    if remote_ip:
        payload["remoteip"] = remote_ip
    timeout = current_app.config.get("RECAPTCHA_TIMEOUT_SECONDS", 10)

    try:
        resp = requests.post(current_app.config["RECAPTCHA_VERIFY_URL"],
                             data=payload, timeout=timeout)
        resp.raise_for_status()
        result = resp.json()
    except requests.Timeout:
        logger.warning("reCAPTCHA verification timed out after %ss", timeout)
        return dict(NETWORK_ERROR)
    except requests.RequestException as exc:
        logger.warning("reCAPTCHA verification error: %s", exc)
        return dict(NETWORK_ERROR)
    except ValueError:
        logger.warning("reCAPTCHA verification returned a non-JSON body")
        return dict(NETWORK_ERROR)

    if not result.get("success"):
        logger.info("reCAPTCHA rejected: %s", result.get("error-codes"))
    return result
