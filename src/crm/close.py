"""Close CRM lead sync for new signups."""
from __future__ import annotations

from datetime import datetime, timezone

import httpx

from src.config.settings import CloseConfig
from src.utils.logging import get_logger

DEFAULT_SOURCE = "DobleLabs Website"

logger = get_logger(__name__)


class CloseError(RuntimeError):
    """Raised when Close rejects or can't be reached."""


def build_lead(
    first_name: str,
    email: str,
    *,
    last_name: str | None = None,
    phone: str | None = None,
    source: str = DEFAULT_SOURCE,
    user_id: str | None = None,
    signup_date: datetime | None = None,
) -> dict:
    """Build the Close lead payload: one contact with email and optional phone."""
    if not email or not first_name:
        raise ValueError("Email and first name are required")

    full_name = f"{first_name} {last_name or ''}".strip()
    contact: dict = {"name": full_name, "emails": [{"email": email, "type": "office"}]}
    if phone:
        contact["phones"] = [{"phone": phone, "type": "mobile"}]

    signup = signup_date or datetime.now(timezone.utc)
    return {
        "name": full_name,
        "contacts": [contact],
        "custom": {
            "Source": source or DEFAULT_SOURCE,
            "Signup Date": signup.isoformat(),
            "User ID": user_id or "N/A",
        },
    }


class CloseClient:
    def __init__(self, config: CloseConfig, *, http: httpx.Client | None = None) -> None:
        self._config = config
        self._http = http or httpx.Client(timeout=15)

    @classmethod
    def from_env(cls) -> CloseClient:
        return cls(CloseConfig.from_env())

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> CloseClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def create_lead(
        self,
        first_name: str,
        email: str,
        *,
        last_name: str | None = None,
        phone: str | None = None,
        source: str | None = None,
        user_id: str | None = None,
    ) -> str:
        """Create a lead for a new signup and return its Close ID."""
        lead = build_lead(
            first_name,
            email,
            last_name=last_name,
            phone=phone,
            source=source or DEFAULT_SOURCE,
            user_id=user_id,
        )
        try:
            response = self._http.post(
                f"{self._config.base_url.rstrip('/')}/lead/",
                json=lead,
                auth=(self._config.api_key, ""),
            )
        except httpx.HTTPError as exc:
            raise CloseError(f"Close request failed: {exc}") from exc

        if response.is_error:
            logger.error("Close API error %s: %s", response.status_code, response.text)
            raise CloseError(f"Close API error: {response.status_code} - {response.text}")

        lead_id = response.json().get("id")
        logger.info("Close lead created: %s", lead_id)
        return lead_id
