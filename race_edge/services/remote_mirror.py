"""
Optional mirror of the ledger to a remote ledger-logging endpoint.

The remote side exposes logEvent / getHistory / getTrustWeights / getROI.
The local ledger never depends on it: a failed mirror call is logged and
reported as a falsy return, never raised into the logging path.
"""

import logging
import os
from typing import Dict, List, Optional

import requests

from race_edge.core.records import EventRecord

logger = logging.getLogger(__name__)

REMOTE_LEDGER_URL = os.getenv("REMOTE_LEDGER_URL")
REMOTE_LEDGER_TIMEOUT = float(os.getenv("REMOTE_LEDGER_TIMEOUT", "15"))


class RemoteLedgerClient:
    def __init__(self, base_url: str, timeout: float = REMOTE_LEDGER_TIMEOUT, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()

    def _get(self, endpoint: str):
        try:
            r = self._http.get(f"{self.base_url}{endpoint}", timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Remote ledger GET %s failed: %s", endpoint, exc)
            return None

    def log_event(self, record: EventRecord) -> bool:
        """Forward one settled event.  Returns False if the remote rejected it."""
        try:
            r = self._http.post(f"{self.base_url}/api/ledger", json=record.to_dict(), timeout=self.timeout)
            r.raise_for_status()
            return True
        except requests.HTTPError as exc:
            logger.warning("Remote ledger rejected event (%s): %s", exc.response.status_code, exc)
            return False
        except requests.RequestException as exc:
            logger.warning("Remote ledger unreachable: %s", exc)
            return False

    def get_history(self) -> Optional[List[Dict]]:
        return self._get("/api/ledger")

    def get_trust_weights(self) -> Optional[Dict[str, float]]:
        return self._get("/api/trust-weights")

    def get_roi(self) -> Optional[float]:
        data = self._get("/api/roi")
        if data is None:
            return None
        return data.get("roi")


def get_remote_client() -> Optional[RemoteLedgerClient]:
    """Client for REMOTE_LEDGER_URL, or None when mirroring is not configured."""
    if not REMOTE_LEDGER_URL:
        return None
    return RemoteLedgerClient(REMOTE_LEDGER_URL)
