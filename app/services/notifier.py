# app/services/notifier.py
from __future__ import annotations

import queue
import threading
import time
import logging
from typing import Any, Dict, List, Optional

import certifi
import requests

log = logging.getLogger("notify")

TELEGRAM_API = "https://api.telegram.org"


# ─────────────────────────────────────────────────────────────────────────────
# Senders
# ─────────────────────────────────────────────────────────────────────────────

class TelegramSender:
    def __init__(self, bot_token: str, chat_id: str, insecure_tls: bool = False, timeout: int = 10):
        self.bot_token = (bot_token or "").strip()
        self.chat_id = str(chat_id or "").strip()
        self.insecure_tls = insecure_tls
        self.timeout = timeout
        self.last_error: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send(self, text: str) -> bool:
        self.last_error = ""
        if not self.configured:
            self.last_error = "empty token/chat"
            log.warning("telegram: empty token/chat, skipping")
            return False

        url = f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
        }
        verify_arg = False if self.insecure_tls else certifi.where()

        try:
            r = requests.post(url, json=payload, timeout=self.timeout, verify=verify_arg)
            if r.status_code != 200:
                self.last_error = f"HTTP {r.status_code}"
                log.error("telegram HTTP %s: %s", r.status_code, r.text[:500])
                return False
            data = r.json()
            if not data.get("ok", False):
                self.last_error = str(data.get("description", "api error"))
                log.error("telegram API error: %s", data)
                return False
            log.info("telegram message sent")
            return True

        except requests.exceptions.SSLError as e:
            self.last_error = f"ssl: {e}"
            log.error("telegram SSL error: %s (insecure_tls=%s)", e, self.insecure_tls)
            return False
        except Exception as e:
            self.last_error = str(e)
            log.exception("telegram send failed: %s", e)
            return False


# ─────────────────────────────────────────────────────────────────────────────
# Fire-and-forget queue in front of the sender
# ─────────────────────────────────────────────────────────────────────────────

class Notifier:
    """
    Alert delivery off the caller's thread. notify() never blocks and never
    raises; a failed delivery only ends up in the log and in recent().
    """

    def __init__(self, sender: TelegramSender, keep_last: int = 50):
        self.sender = sender
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._sent_log: List[Dict[str, Any]] = []
        self._keep_last = keep_last

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._worker, name="notifier", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        if self._thread and self._thread.is_alive():
            self._queue.put(None)
            self._thread.join(timeout=timeout)
        self._thread = None

    def notify(self, text: str) -> bool:
        if not self.sender.configured:
            log.warning("Telegram token/chat id is not set. Skipping notification.")
            return False
        self._queue.put(text)
        return True

    def flush(self) -> None:
        """Block until everything queued so far has been attempted."""
        self._queue.join()

    def send_test(self, text: str) -> tuple[bool, str]:
        ok = self.sender.send(text)
        self._remember(text, ok)
        return ok, ("" if ok else self.sender.last_error)

    def recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._sent_log[-max(0, int(limit)):])

    def _remember(self, text: str, ok: bool) -> None:
        item = {"ts": time.time(), "ok": ok, "preview": text[:200]}
        if not ok:
            item["err"] = self.sender.last_error
        with self._lock:
            self._sent_log.append(item)
            if len(self._sent_log) > self._keep_last:
                self._sent_log = self._sent_log[-self._keep_last:]

    def _worker(self) -> None:
        while True:
            text = self._queue.get()
            try:
                if text is None:
                    return
                ok = self.sender.send(text)
                self._remember(text, ok)
            except Exception as e:
                log.error(f"[notify] delivery error: {e}")
            finally:
                self._queue.task_done()
