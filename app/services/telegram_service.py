import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.core.exceptions import TransportError
from app.schemas.telegram import Update

logger = logging.getLogger("telegram_service")

class TelegramService:
    """Thin async client for the Telegram Bot API."""

    def __init__(
        self,
        token: str,
        api_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        self.token = token
        self.api_url = (api_url or settings.telegram_api_url).rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def base_url(self) -> str:
        return f"{self.api_url}/bot{self.token}"

    async def _call(self, method: str, payload: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        kwargs: Dict[str, Any] = {"json": payload or {}}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self.client.post(f"{self.base_url}/{method}", **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} request failed: {type(e).__name__}") from None

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"{method} returned a non-JSON response", response.status_code) from e

        if not body.get("ok"):
            raise TransportError(
                body.get("description", f"{method} failed"),
                body.get("error_code", response.status_code)
            )
        return body.get("result")

    async def send_message(
        self,
        chat_id: int,
        text: str,
        parse_mode: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def get_file_url(self, file_id: str) -> str:
        result = await self._call("getFile", {"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise TransportError(f"Telegram returned no file_path for {file_id}")
        return f"{self.api_url}/file/bot{self.token}/{file_path}"

    async def download_file(self, file_id: str) -> bytes:
        url = await self.get_file_url(file_id)
        # The file URL embeds the bot token, so it never goes into the error
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(f"file download failed with status {status}", status) from None
        except httpx.HTTPError as e:
            raise TransportError(f"file download failed: {type(e).__name__}") from None
        return response.content

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 10) -> List[Update]:
        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        # Long polling: the HTTP timeout must outlast the server-side wait
        result = await self._call("getUpdates", payload, timeout=timeout + 10)
        updates = []
        for item in result or []:
            try:
                updates.append(Update.model_validate(item))
            except ValidationError as e:
                # Keep the id so the offset still moves past it
                logger.warning(f"Skipping malformed update {item.get('update_id')}: {e.error_count()} errors")
                updates.append(Update(update_id=item["update_id"]))
        return updates

    async def set_my_commands(self, commands: List[Dict[str, str]]) -> bool:
        return await self._call("setMyCommands", {"commands": commands})

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"url": url, "allowed_updates": ["message"]}
        if secret_token:
            payload["secret_token"] = secret_token
        return await self._call("setWebhook", payload)

    async def delete_webhook(self) -> bool:
        return await self._call("deleteWebhook", {"drop_pending_updates": False})

    async def close(self):
        await self.client.aclose()
