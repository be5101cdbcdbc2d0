"""
Outgoing mail.

Messages are written to the log; deployments that need real delivery plug
a transport in with ``set_transport``.
"""
from collections.abc import Callable
from urllib.parse import urlencode

from panodesk.core import config
from panodesk.utils import get_logger


log = get_logger(__name__)

Transport = Callable[[str, str, str], None]


def _log_transport(to: str, subject: str, body: str) -> None:
    log.info("Mail to=%s subject=%r\n%s", to, subject, body)


_transport: Transport = _log_transport


def set_transport(transport: Transport | None) -> None:
    """Replace the delivery function; ``None`` restores logging."""
    global _transport
    _transport = transport or _log_transport


def send_mail(to: str, subject: str, body: str) -> None:
    _transport(to, subject, body)


def frontend_link(path: str, **params: str) -> str:
    base = config.FRONTEND_URL.rstrip("/")
    query = f"?{urlencode(params)}" if params else ""
    return f"{base}{path}{query}"
