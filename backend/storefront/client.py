import logging
from typing import Optional

import requests
from requests import RequestException
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

log = logging.getLogger("storefront.client")


class CartClientError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


def _is_transient(exc: BaseException) -> bool:
    # 4xx means the request itself is wrong; resending it cannot help
    if isinstance(exc, CartClientError):
        return exc.status_code >= 500
    return isinstance(exc, RequestException)


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception(_is_transient),
    )


class CartClient:
    """
    Thin client for the cart API. Reads and adds are retried with backoff;
    every other call is sent once.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session_id: Optional[str] = None,
        timeout: int = 5,
        cookie_name: str = "sessionId",
        http: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cookie_name = cookie_name
        self.http = http or requests.Session()
        if token:
            self.http.headers["Authorization"] = f"Bearer {token}"
        if session_id:
            self.http.cookies.set(cookie_name, session_id)

    @property
    def session_id(self) -> Optional[str]:
        return self.http.cookies.get(self.cookie_name)

    def _call(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}/api/cart{path}"
        log.debug("CartClient %s %s", method, url)
        resp = self.http.request(method, url, timeout=self.timeout, **kwargs)
        try:
            body = resp.json()
        except ValueError:
            body = {"success": False, "message": None}
        if resp.status_code >= 400 or not body.get("success", False):
            raise CartClientError(resp.status_code, body.get("message") or resp.reason)
        return body["data"]

    @http_retry()
    def get_cart(self) -> dict:
        return self._call("GET", "")

    @http_retry()
    def add_item(self, product_id: int, quantity: int = 1) -> dict:
        return self._call("POST", "/add", json={"productId": product_id, "quantity": quantity})

    def update_item(self, product_id: int, quantity: int) -> dict:
        return self._call("PUT", "/update", json={"productId": product_id, "quantity": quantity})

    def remove_item(self, product_id: int) -> dict:
        return self._call("DELETE", f"/remove/{product_id}")

    def clear_cart(self) -> dict:
        return self._call("DELETE", "/clear")

    def merge(self) -> dict:
        return self._call("POST", "/merge")
