from __future__ import annotations

import base64
import json
import time
import urllib.error
import urllib.parse
import urllib.request
import uuid
from dataclasses import dataclass
from typing import Any


class YooKassaError(RuntimeError):
    pass


class YooKassaRateLimited(YooKassaError):
    pass


@dataclass(frozen=True)
class YooKassaClient:
    shop_id: str
    secret_key: str
    base_url: str = "https://api.yookassa.ru/v3"
    timeout_seconds: int = 30

    @property
    def configured(self) -> bool:
        return bool(self.shop_id and self.secret_key)

    def _auth_header(self) -> str:
        token = f"{self.shop_id}:{self.secret_key}".encode("utf-8")
        return "Basic " + base64.b64encode(token).decode("ascii")

    def request_json(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        idempotence_key: str | None = None,
        retries: int = 2,
    ) -> dict[str, Any]:
        if not self.configured:
            raise YooKassaError("YooKassa credentials are not configured")
        url = self.base_url.rstrip("/") + path
        data = json.dumps(body).encode("utf-8") if body is not None else None

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, data=data, method=method)
                req.add_header("Authorization", self._auth_header())
                req.add_header("Accept", "application/json")
                if data is not None:
                    req.add_header("Content-Type", "application/json")
                if idempotence_key:
                    # Same key on every retry so the provider never creates a second payment.
                    req.add_header("Idempotence-Key", idempotence_key)
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8"))
                    except ValueError as e:
                        raise YooKassaError(f"Invalid JSON from YooKassa ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429 or e.code >= 500:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = YooKassaRateLimited("Rate limited (429)") if e.code == 429 else e
                    continue
                try:
                    err_body = e.read().decode("utf-8", errors="ignore")
                except OSError:
                    err_body = ""
                raise YooKassaError(f"HTTP {e.code} from YooKassa: {err_body[:300]}") from e
            except urllib.error.URLError as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise YooKassaError(f"YooKassa request failed after retries: {last_err}")

    def create_payment(self, body: dict[str, Any], *, idempotence_key: str | None = None) -> dict[str, Any]:
        return self.request_json("POST", "/payments", body=body, idempotence_key=idempotence_key or str(uuid.uuid4()))

    def get_payment(self, payment_id: str) -> dict[str, Any]:
        j = self.request_json("GET", f"/payments/{urllib.parse.quote(str(payment_id))}")
        return j if isinstance(j, dict) else {}


def client_from_config(config: dict) -> YooKassaClient:
    return YooKassaClient(
        shop_id=(config.get("YKS_SHOP_ID") or "").strip(),
        secret_key=(config.get("YKS_SECRET") or "").strip(),
        base_url=(config.get("YOOKASSA_API_URL") or "https://api.yookassa.ru/v3").strip(),
    )
