"""
Enode API client for charger control and usage statistics.

Every call attaches the cached bearer token. Non-2xx responses are raised as
`ChargingError(kind=EXTERNAL_API)` carrying the upstream status, raw body and
an operation context. Empty bodies are returned as None and non-JSON bodies
are wrapped as {"raw": body}.
"""
import json
import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from app.core.clock import isoformat
from app.core.config import settings
from app.core.errors import ChargingError
from app.services.enode_auth import EnodeTokenProvider, get_token_provider
from app.services.enode_records import (
    ActionSnapshot,
    ChargerActionKind,
    ChargerInfo,
    UsageRecord,
    normalize_action,
    normalize_chargers,
    normalize_usage_records,
)

logger = logging.getLogger(__name__)

ERROR_DETAIL_KEYS = ("detail", "title", "error_description", "error")


def parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def extract_error_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ERROR_DETAIL_KEYS:
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return fallback


class EnodeClient:
    """Thin synchronous client over the Enode REST API."""

    def __init__(
        self,
        token_provider: EnodeTokenProvider,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        context: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        error_message: str = "Enode API error",
    ) -> Any:
        token = self.token_provider.get_token()
        headers = {"Authorization": f"Bearer {token}"}
        if json_body is not None:
            headers["Content-Type"] = "application/json"

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(
                    method,
                    self._url(path),
                    json=json_body,
                    params=params,
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Enode API timeout ({context}): {method} {path}")
            raise ChargingError.external(None, None, context, message="Enode API timeout", cause=e)
        except httpx.HTTPError as e:
            logger.error(f"Enode API transport error ({context}): {type(e).__name__}")
            raise ChargingError.external(None, None, context, message="Enode API unreachable", cause=e)

        text = response.text
        body = parse_body(text)
        if not response.is_success:
            logger.error(f"Enode API error ({context}): status={response.status_code} body={text[:1000] or None}")
            raise ChargingError.external(
                response.status_code,
                text or body,
                context,
                message=extract_error_message(body, error_message),
            )
        return body

    def send_action(self, charger_id: str, kind: ChargerActionKind) -> Optional[ActionSnapshot]:
        """POST /chargers/{chargerId}/charging with START or STOP."""
        body = self.request(
            "POST",
            f"/chargers/{quote(charger_id, safe='')}/charging",
            context=f"charger-action:{kind.value.lower()}:{charger_id}",
            json_body={"action": kind.value},
            error_message=f"Unable to send {kind.value} action to the charger",
        )
        action = normalize_action(body)
        logger.info(
            f"Sent {kind.value} action to charger {charger_id}: "
            f"action_id={action.id if action else None} state={action.state.value if action and action.state else None}"
        )
        return action

    def fetch_action(self, action_id: str, charger_id: Optional[str] = None, context: Optional[str] = None) -> Optional[ActionSnapshot]:
        if charger_id:
            path = f"/chargers/{quote(charger_id, safe='')}/actions/{quote(action_id, safe='')}"
        else:
            path = f"/chargers/actions/{quote(action_id, safe='')}"
        body = self.request(
            "GET",
            path,
            context=context or f"charger-action-fetch:{action_id}",
            error_message="Unable to fetch the charger action",
        )
        return normalize_action(body)

    def fetch_usage(
        self,
        account_id: str,
        charger_id: str,
        start: datetime,
        end: datetime,
    ) -> List[UsageRecord]:
        body = self.request(
            "GET",
            f"/users/{quote(account_id, safe='')}/chargers/{quote(charger_id, safe='')}/sessions",
            context=f"charger-usage:{charger_id}",
            params={"start": isoformat(start), "end": isoformat(end)},
            error_message="Unable to fetch charging statistics",
        )
        return normalize_usage_records(body)

    def list_chargers(self, account_id: str) -> List[ChargerInfo]:
        body = self.request(
            "GET",
            f"/users/{quote(account_id, safe='')}/chargers",
            context=f"charger-list:{account_id}",
            error_message="Unable to list the linked chargers",
        )
        return normalize_chargers(body)

    def create_link_session(
        self,
        account_id: str,
        redirect_uri: str,
        scopes: List[str],
        language: str,
    ) -> Optional[str]:
        body = self.request(
            "POST",
            f"/users/{quote(account_id, safe='')}/link",
            context=f"link-session:{account_id}",
            json_body={
                "vendorType": "charger",
                "scopes": scopes,
                "language": language,
                "redirectUri": redirect_uri,
            },
            error_message="Unable to create an Enode link session",
        )
        if not isinstance(body, dict):
            return None
        for key in ("linkUrl", "link_url", "url"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


@lru_cache(maxsize=1)
def get_enode_client() -> EnodeClient:
    """FastAPI dependency: process-wide Enode client."""
    return EnodeClient(
        token_provider=get_token_provider(),
        base_url=settings.ENODE_API_URL,
        timeout=settings.ENODE_HTTP_TIMEOUT_SECONDS,
    )
