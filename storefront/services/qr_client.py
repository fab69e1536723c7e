# storefront/services/qr_client.py
import time
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Tuple

import requests
from requests import RequestException

from storefront.domain.errors import ProcessorError
from storefront.domain.schemas import PaymentState
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    QR_ACCOUNT_ID,
    QR_AUTHORIZATION_ID,
    QR_AUTH_URL,
    QR_API_URL,
    QR_EXPIRATION_DAYS,
    QR_SINGLE_USE,
    QR_TOKEN_TTL_SECONDS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# processor codes: 1 not used, 2 used, 3 expired, 4 error
PROCESSOR_STATUS = {
    "1": PaymentState.PENDING,
    "2": PaymentState.PAID,
    "3": PaymentState.EXPIRED,
    "4": PaymentState.ERROR,
}


def map_processor_status(code) -> PaymentState:
    return PROCESSOR_STATUS.get(str(code), PaymentState.PENDING)


class QRProcessorClient:
    """
    HTTP client for the bank's QR payment API.
    Flow: authenticate -> generate QR -> poll QR status. The bearer token is
    cached until it expires.
    """

    def __init__(
        self,
        account_id: str | None = None,
        authorization_id: str | None = None,
        auth_url: str | None = None,
        api_url: str | None = None,
        timeout: int = 10,
        session: requests.Session | None = None,
        clock=time.monotonic,
    ):
        self.account_id = QR_ACCOUNT_ID if account_id is None else account_id
        self.authorization_id = QR_AUTHORIZATION_ID if authorization_id is None else authorization_id
        self.auth_url = (auth_url or QR_AUTH_URL).rstrip("/")
        self.api_url = (api_url or QR_API_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._clock = clock
        self._token: str | None = None
        self._token_expires: float = 0.0

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.account_id:
            missing.append("QR_ACCOUNT_ID")
        if not self.authorization_id:
            missing.append("QR_AUTHORIZATION_ID")
        return missing

    @http_retry()
    def _send(self, url: str, payload: Dict[str, Any], token: str | None = None) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        logger.info(f"QRProcessorClient POST {url}")
        resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _post(self, url: str, payload: Dict[str, Any], token: str | None = None) -> Dict[str, Any]:
        try:
            return self._send(url, payload, token)
        except RequestException as e:
            raise ProcessorError(f"Payment processor unreachable: {e}") from e
        except ValueError as e:
            raise ProcessorError(f"Payment processor returned a malformed response: {e}") from e

    def authenticate(self) -> str:
        missing = self.missing_fields()
        if missing:
            raise ProcessorError(f"Missing payment processor configuration: {', '.join(missing)}")

        if self._token and self._clock() < self._token_expires:
            return self._token

        data = self._post(
            f"{self.auth_url}/auth/token",
            {"accountId": self.account_id, "authorizationId": self.authorization_id},
        )
        if not data.get("success"):
            raise ProcessorError(f"Authentication failed: {data.get('message')}")

        #token comes back in the message field
        self._token = data["message"]
        self._token_expires = self._clock() + QR_TOKEN_TTL_SECONDS
        return self._token

    def generate_qr(self, amount: Decimal, reference: str, currency: str) -> Tuple[str, str]:
        """Returns (qr_id, base64 png)."""
        token = self.authenticate()
        expiration = (datetime.now(timezone.utc) + timedelta(days=QR_EXPIRATION_DAYS)).date().isoformat()

        data = self._post(
            f"{self.api_url}/main/getQRWithImageAsync",
            {
                "currency": currency,
                "gloss": f"Order #{reference}",
                "amount": str(amount),
                "singleUse": str(QR_SINGLE_USE).lower(),
                "expirationDate": expiration,
            },
            token,
        )
        if not data.get("success") or not data.get("qr"):
            raise ProcessorError(f"QR generation failed: {data.get('message')}")

        qr_id = data.get("id") or f"qr_{int(time.time() * 1000)}"
        logger.info(f"Generated QR {qr_id} for {reference}: {amount} {currency}")
        return qr_id, data["qr"]

    def check_qr_status(self, qr_id: str) -> Tuple[PaymentState, str | None]:
        token = self.authenticate()
        data = self._post(f"{self.api_url}/main/getQRStatusAsync", {"qrId": qr_id}, token)

        #a failed lookup says nothing about the QR itself, it may still be paid later
        if not data.get("success"):
            raise ProcessorError(f"QR status check failed: {data.get('message') or 'no message'}")

        #the status code is returned in the qrId field
        return map_processor_status(data.get("qrId")), data.get("message")

    def get_qrs_by_date(self, day: date | str) -> List[Dict[str, Any]]:
        token = self.authenticate()
        generation_date = day.isoformat() if isinstance(day, date) else day

        data = self._post(
            f"{self.api_url}/main/getQRbyGenerationDateAsync",
            {"generationDate": generation_date},
            token,
        )
        if not data.get("success"):
            raise ProcessorError(f"QR history fetch failed: {data.get('message')}")
        return data.get("dTOqrDetails") or []
