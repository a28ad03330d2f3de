"""
Telegram Notifier

Sends alert messages through the Telegram Bot API sendMessage method.
Delivery is fire-and-forget: failures are logged and never reach the
caller that triggered the alert.
"""

import asyncio
import logging

import httpx

log = logging.getLogger("powerhub.notifier")


def threshold_message(node_id: str, power: float, threshold: float) -> str:
    return f"⚠️ ALERT: Node {node_id}\nPower threshold exceeded!\nPower: {power}W > Threshold: {threshold}W"


def manual_message(node_id: str, power) -> str:
    return f"⚠️ ALERT: Node {node_id}\nPower threshold exceeded!\nCurrent power = {power}W"


class TelegramNotifier:
    def __init__(
        self,
        token: str | None,
        chat_id: str | None,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()

    @property
    def configured(self) -> bool:
        return bool(self.token and self.chat_id)

    async def send(self, node_id: str, message: str) -> bool:
        """
        Post one message. Returns True when Telegram accepted it.

        Never raises for delivery problems; they are logged instead.
        """
        if not self.configured:
            log.info("Telegram alert (not sent - bot not configured): %s", message)
            return False

        url = f"{self.api_url}/bot{self.token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json={"chat_id": self.chat_id, "text": message})
        except httpx.HTTPError as e:
            log.error("Telegram error for node %s: %s", node_id, e)
            return False

        if response.status_code >= 400:
            log.error("Telegram alert failed for node %s: %s %s", node_id, response.status_code, response.text[:200])
            return False

        log.info("Telegram alert sent successfully for node %s", node_id)
        return True

    def dispatch(self, node_id: str, message: str) -> None:
        """Schedule send() in the background and return immediately."""
        task = asyncio.get_running_loop().create_task(self.send(node_id, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight notifications (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
