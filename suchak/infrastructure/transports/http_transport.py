"""HTTP relay transport implementation (Strategy Pattern)."""
import logging
from typing import Any, Dict, List, Optional
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from suchak.domain.errors import PermanentFailure, TransportFailure
from suchak.domain.interfaces.transport import ITransport


# 4xx answers that are still worth retrying
RETRYABLE_CLIENT_STATUSES = {408, 429}


class HttpTransport(ITransport):
    """
    Sends messages and receipts to the SUCHAK relay over HTTPS.

    Implements ITransport following Strategy Pattern. The session retries
    idempotent-by-id POSTs a couple of times on gateway errors; anything
    still failing is reported to the outbox as a TransportFailure.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 8):
        """
        Initialize the HTTP transport with connection pooling.

        Args:
            base_url: Relay base URL, e.g. https://relay.example.com/v1
            token: Bearer token for the relay
            timeout: Request timeout in seconds
        """
        if not base_url:
            raise ValueError("TRANSPORT_URL not configured")
        self._logger = logging.getLogger(__name__)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with connection pooling."""
        session = requests.Session()

        retry_strategy = Retry(
            total=2,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=["POST"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=20,
            pool_maxsize=20,
            pool_block=False
        )

        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.post(url, json=payload, headers=self._headers, timeout=self._timeout)
        except requests.Timeout as e:
            self._logger.error(f"Request to {path} timed out")
            raise TransportFailure(f"Timeout calling {path}") from e
        except requests.RequestException as e:
            self._logger.error(f"Request to {path} failed: {e}")
            raise TransportFailure(f"Request to {path} failed: {e}") from e

        if 200 <= response.status_code < 300:
            try:
                return response.json() or {}
            except ValueError:
                return {}

        error_msg = self._error_message(response)
        self._logger.error(f"Relay returned {response.status_code} for {path}: {error_msg}")
        if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_CLIENT_STATUSES:
            raise PermanentFailure(error_msg, status_code=response.status_code)
        raise TransportFailure(error_msg, status_code=response.status_code)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            error_data = response.json()
            return error_data.get("error", {}).get("message") or f"HTTP {response.status_code}"
        except (ValueError, AttributeError):
            return response.text or f"HTTP {response.status_code}"

    def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a message to the relay.

        Args:
            payload: Wire representation of an outbox entry

        Returns:
            Relay acknowledgement (may contain 'media_url')
        """
        ack = self._post("/messages", payload)
        self._logger.info(f"Relay accepted {payload.get('id')} for {payload.get('conversation_id')}")
        return ack

    def send_receipt(self, conversation_id: str, message_ids: List[str], state: str) -> None:
        self._post("/receipts", {
            "conversation_id": conversation_id,
            "message_ids": list(message_ids),
            "state": state,
        })
        self._logger.debug(f"Sent {state} receipt for {len(message_ids)} messages in {conversation_id}")
