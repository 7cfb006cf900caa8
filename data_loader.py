import threading
import time
from typing import Any, Callable, Dict, List, Optional
import requests
import logging

from aggregator import NamedSource, Suggestion
from search_engine import SearchEngine

logger = logging.getLogger("data_loader")


CAMPAIGN_FIELDS = ("title", "description")
EMPLOYEE_FIELDS = ("name", "email")
EVALUATION_FIELDS = ("employee_name", "partner_name", "comment", "campaign_title")

# evaluations have no search endpoint, so only this many campaigns are scanned
EVALUATION_CAMPAIGN_SCAN = 10
EVALUATION_CAMPAIGN_PAGE = 50

RECORD_KEYS = ("results", "items", "data", "evaluations")


def normalize_records(data: Any) -> List[Dict[str, Any]]:
    """Flatten the response shapes the admin API uses into a list of dicts."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in RECORD_KEYS:
            if key in data and isinstance(data[key], list):
                return data[key]
        # paginated wrappers nest the list one level down
        for key in RECORD_KEYS:
            if isinstance(data.get(key), dict):
                return normalize_records(data[key])
        if data and all(isinstance(v, dict) for v in data.values()):
            # maybe it's an id->obj mapping
            return list(data.values())
        if not data:
            return []
    raise ValueError("Unexpected response shape from records endpoint")


class ApiClient:
    """Thin requests wrapper around the campaign admin API."""

    def __init__(self, base_url: str, timeout: float = 30.0, retry_attempts: int = 3,
                 retry_delay: float = 1.0, token: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 session_factory: Callable[[], requests.Session] = requests.Session):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.token = token
        self._session_factory = session_factory
        self._shared_session = self._authorize(session) if session is not None else None
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """The session for the calling thread.

        Sources run in worker threads and `requests.Session` is not
        thread-safe, so each thread gets its own unless one was injected.
        """
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._authorize(self._session_factory())
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def _authorize(self, session: requests.Session) -> requests.Session:
        if self.token:
            session.headers["Authorization"] = f"Bearer {self.token}"
        return session

    def get_records(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """GET `path` and return its records, retrying transient failures.

        Auth and other client errors are raised immediately; network errors
        and 5xx/429 responses are retried with exponential backoff and the
        last error is raised once the attempts are used up.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        backoff = self.retry_delay
        last_exc: Optional[Exception] = None

        for attempt in range(1, self.retry_attempts + 1):
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
                resp.raise_for_status()
                return normalize_records(resp.json())
            except requests.exceptions.HTTPError as http_err:
                status = getattr(http_err.response, "status_code", None)
                # 4xx other than throttling will not get better on retry
                if status is not None and 400 <= status < 500 and status != 429:
                    logger.error("Upstream returned %s for %s - not retrying", status, url)
                    raise
                last_exc = http_err
            except requests.exceptions.RequestException as exc:
                last_exc = exc

            if attempt < self.retry_attempts:
                logger.warning("Transient error fetching %s (attempt %s/%s): %s",
                               url, attempt, self.retry_attempts, last_exc)
                time.sleep(backoff)
                backoff *= 2

        logger.error("Failed to fetch %s after %s attempts: %s", url, self.retry_attempts, last_exc)
        raise last_exc

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
            self._local = threading.local()
        if self._shared_session is not None:
            sessions.append(self._shared_session)
        for session in sessions:
            session.close()


def _tag(records: List[Any], kind: str) -> List[Dict[str, Any]]:
    return [{**r, "type": kind} for r in records if isinstance(r, dict)]


def campaign_suggestion(record: Dict[str, Any]) -> Suggestion:
    return Suggestion(text=record.get("title") or "", type="campaign",
                      link=f"/campaigns/{record.get('id')}")


def employee_suggestion(record: Dict[str, Any]) -> Suggestion:
    return Suggestion(text=record.get("name") or "", type="employee",
                      subtitle=record.get("email"), link=f"/employees/{record.get('id')}")


def evaluation_suggestion(record: Dict[str, Any]) -> Suggestion:
    return Suggestion(
        text=f"{record.get('employee_name')} ↔ {record.get('partner_name')}",
        type="evaluation",
        subtitle=f"{record.get('campaign_title')} - Rating: {record.get('rating')}/5",
        link=f"/campaigns/{record.get('campaign_id')}/feedback",
    )


def campaign_source(client: ApiClient) -> NamedSource:
    def fetch(query: str, limit: int) -> List[Dict[str, Any]]:
        records = client.get_records("/campaigns/", {"search": query, "page_size": limit})
        return _tag(records, "campaign")

    return NamedSource("campaigns", fetch, CAMPAIGN_FIELDS, suggest=campaign_suggestion)


def employee_source(client: ApiClient) -> NamedSource:
    def fetch(query: str, limit: int) -> List[Dict[str, Any]]:
        records = client.get_records("/employees/", {"search": query, "page_size": limit})
        return _tag(records, "employee")

    return NamedSource("employees", fetch, EMPLOYEE_FIELDS, suggest=employee_suggestion)


def evaluation_source(client: ApiClient) -> NamedSource:
    def fetch(query: str, limit: int) -> List[Dict[str, Any]]:
        campaigns = client.get_records("/campaigns/", {"page_size": EVALUATION_CAMPAIGN_PAGE})
        needle = query.lower()
        found = []
        for campaign in campaigns[:EVALUATION_CAMPAIGN_SCAN]:
            if not isinstance(campaign, dict):
                continue
            campaign_id = campaign.get("id")
            try:
                evaluations = client.get_records(f"/evaluations/campaigns/{campaign_id}/evaluations/")
            except (requests.exceptions.RequestException, ValueError) as exc:
                # one unreadable campaign should not hide the others
                logger.warning("Could not fetch evaluations for campaign %s: %s", campaign_id, exc)
                continue
            title = campaign.get("title")
            title = title if isinstance(title, str) else ""
            for evaluation in evaluations:
                if not isinstance(evaluation, dict):
                    continue
                parts = [evaluation.get(k) for k in ("employee_name", "partner_name", "comment")]
                haystack = " ".join(p for p in parts + [title] if isinstance(p, str)).lower()
                if needle in haystack:
                    found.append({
                        "id": evaluation.get("id"),
                        "employee_name": evaluation.get("employee_name"),
                        "partner_name": evaluation.get("partner_name"),
                        "campaign_title": title,
                        "campaign_id": campaign_id,
                        "rating": evaluation.get("rating"),
                        "comment": evaluation.get("comment"),
                        "submitted_at": evaluation.get("submitted_at"),
                        "type": "evaluation",
                    })
        ranker = SearchEngine(found, EVALUATION_FIELDS)
        return [m.record for m in ranker.search(query, threshold=0, limit=limit)]

    return NamedSource("evaluations", fetch, EVALUATION_FIELDS, suggest=evaluation_suggestion)


def default_sources(client: ApiClient) -> List[NamedSource]:
    return [campaign_source(client), employee_source(client), evaluation_source(client)]
