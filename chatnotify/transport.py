"""Telegram Bot API transport.

``Transport`` is the capability the delivery client depends on; tests swap
in fakes. ``TelegramBotTransport`` implements it with ``requests`` against
``sendMessage``, ``sendPhoto`` and ``sendDocument``. Topic messages carry
``message_thread_id``.

Errors (HTTP failures, ``{"ok": false}`` replies, network exceptions) are
raised as ``TransportError``; converting them to outcomes is the delivery
client's job.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import requests

LOGGER = logging.getLogger(__name__)

API_BASE_URL = "https://api.telegram.org"


class TransportError(Exception):
    """Remote call rejected or unreachable."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Transport(Protocol):
    """Remote operations required by the delivery client."""

    def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: Optional[int] = None,
        parse_mode: Optional[str] = None,
        disable_web_page_preview: bool = True,
        disable_notification: bool = False,
    ) -> None:
        ...

    def send_photo(
        self,
        chat_id: str,
        path: Path,
        *,
        thread_id: Optional[int] = None,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        disable_notification: bool = False,
    ) -> None:
        ...

    def send_document(
        self,
        chat_id: str,
        path: Path,
        *,
        thread_id: Optional[int] = None,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        disable_notification: bool = False,
    ) -> None:
        ...


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class TelegramBotTransport:
    """Minimal Telegram Bot API client.

    Example:
        transport = TelegramBotTransport(token)
        transport.send_message("-100123", "<b>deploy</b> finished", parse_mode="HTML")
    """

    def __init__(
        self,
        token: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        base_url: str = API_BASE_URL,
    ) -> None:
        if not token:
            raise ValueError("token must be provided")
        self._token = token
        self._session = session or requests.Session()
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")

    def _endpoint(self, method: str) -> str:
        return f"{self._base_url}/bot{self._token}/{method}"

    def _post(
        self,
        method: str,
        payload: Dict[str, Any],
        *,
        files: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        LOGGER.debug(
            "telegram.%s chat_id=%s thread_id=%s",
            method,
            payload.get("chat_id"),
            payload.get("message_thread_id"),
        )
        try:
            if files:
                form = {k: _form_value(v) for k, v in payload.items()}
                resp = self._session.post(self._endpoint(method), data=form, files=files, timeout=self._timeout)
            else:
                resp = self._session.post(self._endpoint(method), json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            # exception text may embed the URL, which carries the token
            raise TransportError(f"{method} request failed: {type(exc).__name__}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code != 200 or not data.get("ok", False):
            description = data.get("description") or f"HTTP {resp.status_code}"
            raise TransportError(f"{method} rejected: {description}", status_code=resp.status_code)
        return data

    @staticmethod
    def _base_payload(
        chat_id: str,
        thread_id: Optional[int],
        parse_mode: Optional[str],
        disable_notification: bool,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id}
        if thread_id is not None:
            payload["message_thread_id"] = thread_id
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if disable_notification:
            payload["disable_notification"] = True
        return payload

    def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        thread_id: Optional[int] = None,
        parse_mode: Optional[str] = None,
        disable_web_page_preview: bool = True,
        disable_notification: bool = False,
    ) -> None:
        payload = self._base_payload(chat_id, thread_id, parse_mode, disable_notification)
        payload["text"] = text
        if disable_web_page_preview:
            payload["disable_web_page_preview"] = True
        self._post("sendMessage", payload)

    def _send_file(
        self,
        method: str,
        field_name: str,
        chat_id: str,
        path: Path,
        thread_id: Optional[int],
        caption: Optional[str],
        parse_mode: Optional[str],
        disable_notification: bool,
    ) -> None:
        payload = self._base_payload(chat_id, thread_id, parse_mode, disable_notification)
        if caption:
            payload["caption"] = caption
        with open(path, "rb") as fh:
            self._post(method, payload, files={field_name: (Path(path).name, fh)})

    def send_photo(
        self,
        chat_id: str,
        path: Path,
        *,
        thread_id: Optional[int] = None,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        disable_notification: bool = False,
    ) -> None:
        self._send_file("sendPhoto", "photo", chat_id, path, thread_id, caption, parse_mode, disable_notification)

    def send_document(
        self,
        chat_id: str,
        path: Path,
        *,
        thread_id: Optional[int] = None,
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
        disable_notification: bool = False,
    ) -> None:
        self._send_file(
            "sendDocument", "document", chat_id, path, thread_id, caption, parse_mode, disable_notification
        )

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "TelegramBotTransport":
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()


__all__ = ["API_BASE_URL", "TelegramBotTransport", "Transport", "TransportError"]
