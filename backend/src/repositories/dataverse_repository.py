"""Durable records in a remote Dataverse-style OData Web API.

Record ids returned by this adapter are entity paths such as
``osot_table_order_products(4f1c...)`` so that update and delete can address
the right entity set without a lookup.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests

from config import Settings
from staging.errors import ConflictError, FatalBackendError, TransientBackendError
from .ports import DurableRecord, DurableRepositoryPort, StoredRecord

logger = logging.getLogger(__name__)

# record_type -> (entity set, primary key column)
ENTITY_SETS: Dict[str, Tuple[str, str]] = {
    "order_product": ("osot_table_order_products", "osot_table_order_productid"),
    "membership_category": ("osot_table_membership_categories", "osot_table_membership_categoryid"),
    "membership_employment": ("osot_table_membership_employments", "osot_table_membership_employmentid"),
    "membership_practices": ("osot_table_membership_practices", "osot_table_membership_practicesid"),
    "membership_preferences": ("osot_table_membership_preferences", "osot_table_membership_preferenceid"),
}

IDEMPOTENCY_FIELD = "osot_idempotency_key"
SESSION_FIELD = "osot_session_id"
OWNER_FIELD = "osot_owner_id"
PRIVILEGE_FIELD = "osot_privilege"
ACCESS_FIELD = "osot_access_modifiers"

SYSTEM_FIELDS = (IDEMPOTENCY_FIELD, SESSION_FIELD, OWNER_FIELD, PRIVILEGE_FIELD, ACCESS_FIELD)

ENTITY_ID_PATTERN = re.compile(r"([A-Za-z_]+)\(([0-9a-fA-F-]{36})\)")


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class DataverseRepository(DurableRepositoryPort):
    """OData adapter.

    Args:
        session: requests session carrying the auth and OData headers
        base_url: Web API root, for example https://org.crm.dynamics.com/api/data/v9.2/
        timeout: per-request timeout in seconds
    """

    def __init__(self, session: requests.Session, base_url: str, timeout: float = 10.0):
        self.session = session
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "DataverseRepository":
        if not settings.DATAVERSE_URL:
            raise ValueError("DATAVERSE_URL must be set when DURABLE_BACKEND=DATAVERSE")

        session = requests.Session()
        session.headers.update({
            "Accept": "application/json",
            "OData-MaxVersion": "4.0",
            "OData-Version": "4.0",
        })
        if settings.DATAVERSE_TOKEN:
            session.headers["Authorization"] = f"Bearer {settings.DATAVERSE_TOKEN}"

        return cls(session, settings.DATAVERSE_URL, timeout=settings.BACKEND_TIMEOUT_SECONDS)

    def create(self, record: DurableRecord) -> str:
        entity_set, _ = self._entity(record.record_type)

        existing = self.find_by_idempotency_key(record.record_type, record.idempotency_key)
        if existing:
            logger.info(
                "Record already exists for idempotency key, reusing",
                extra={"idempotency_key": record.idempotency_key, "record_id": existing.id}
            )
            return existing.id

        body = dict(record.payload)
        body.update({
            IDEMPOTENCY_FIELD: record.idempotency_key,
            SESSION_FIELD: record.session_id,
            OWNER_FIELD: record.owner_id,
            PRIVILEGE_FIELD: record.privilege,
            ACCESS_FIELD: record.access_modifier,
        })
        response = self._request("POST", entity_set, json=body, session_id=record.session_id)

        entity_ref = response.headers.get("OData-EntityId")
        if not entity_ref and response.content:
            entity_ref = response.json().get("@odata.id")
        match = ENTITY_ID_PATTERN.search(entity_ref or "")
        if not match:
            raise FatalBackendError(
                f"No entity id in create response for {record.record_type}",
                session_id=record.session_id,
            )

        record_id = f"{match.group(1)}({match.group(2)})"
        logger.info(
            f"Created {record.record_type} record",
            extra={"record_id": record_id, "idempotency_key": record.idempotency_key}
        )
        return record_id

    def update(self, record_id: str, patch: Dict[str, Any]) -> None:
        self._request("PATCH", record_id, json=patch, headers={"If-Match": "*"})

    def delete(self, record_id: str) -> None:
        self._request("DELETE", record_id, allow_missing=True)
        logger.info("Deleted record", extra={"record_id": record_id})

    def find_by_idempotency_key(self, record_type: str, idempotency_key: str) -> Optional[StoredRecord]:
        rows = self._query(record_type, f"{IDEMPOTENCY_FIELD} eq {_odata_literal(idempotency_key)}", top=1)
        return rows[0] if rows else None

    def find(self, record_type: str, owner_id: str) -> List[StoredRecord]:
        return self._query(record_type, f"{OWNER_FIELD} eq {_odata_literal(owner_id)}")

    def close(self) -> None:
        self.session.close()

    def _entity(self, record_type: str) -> Tuple[str, str]:
        if record_type not in ENTITY_SETS:
            raise FatalBackendError(f"No entity set mapped for record type: {record_type}")
        return ENTITY_SETS[record_type]

    def _query(self, record_type: str, odata_filter: str, top: Optional[int] = None) -> List[StoredRecord]:
        entity_set, primary_key = self._entity(record_type)
        params = {"$filter": odata_filter}
        if top:
            params["$top"] = str(top)

        response = self._request("GET", entity_set, params=params)
        records = []
        for row in response.json().get("value", []):
            payload = {
                k: v for k, v in row.items()
                if not k.startswith("@") and k != primary_key and k not in SYSTEM_FIELDS
            }
            records.append(StoredRecord(
                id=f"{entity_set}({row[primary_key]})",
                record_type=record_type,
                idempotency_key=row.get(IDEMPOTENCY_FIELD),
                session_id=row.get(SESSION_FIELD),
                owner_id=row.get(OWNER_FIELD),
                payload=payload,
            ))
        return records

    def _request(
        self,
        method: str,
        path: str,
        allow_missing: bool = False,
        session_id: Optional[str] = None,
        **kwargs,
    ) -> requests.Response:
        """Send a request and map failures onto the backend error taxonomy."""
        url = self.base_url + path
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise TransientBackendError(f"{method} {path} timed out", session_id=session_id) from e
        except requests.exceptions.ConnectionError as e:
            raise TransientBackendError(f"{method} {path} failed: {e}", session_id=session_id) from e
        except requests.exceptions.RequestException as e:
            raise FatalBackendError(f"{method} {path} could not be sent: {e}", session_id=session_id) from e

        status = response.status_code
        if status < 400:
            return response
        if status == 404 and allow_missing:
            return response

        detail = response.text[:500]
        if status == 429 or status >= 500:
            raise TransientBackendError(
                f"{method} {path} returned {status}: {detail}", session_id=session_id
            )
        if status in (409, 412):
            raise ConflictError(
                f"{method} {path} conflicted ({status}): {detail}",
                reason="duplicate",
                session_id=session_id,
            )
        raise FatalBackendError(f"{method} {path} returned {status}: {detail}", session_id=session_id)
