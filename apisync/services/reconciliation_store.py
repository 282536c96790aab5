"""
API Sync Backend - Reconciliation Store
========================================

What:  In-memory working set of endpoints for one project, with the filtered
       views and counters the dashboard needs.
Who:   - EndpointService: builds one per request from the loaded rows to
         answer GET /api/endpoints and project summaries
         - ApiSyncClient: keeps one as its local mirror of server state

Filter semantics:
    An endpoint passes when ALL of:
        status_filter empty  OR endpoint.status in status_filter
        method_filter empty  OR endpoint.method in method_filter
        search_text empty    OR case-insensitive substring of name, path
                                or description
    Values inside one filter are ORed.

Everything here is a pure derivation over the current set; no I/O.
"""

import uuid
from typing import Dict, Iterable, Iterator, List, Optional, Union

from apisync.models.enums import EndpointStatus, HttpMethod
from apisync.schemas.endpoint import EndpointResponse

StatusLike = Union[EndpointStatus, str]
MethodLike = Union[HttpMethod, str]


class ReconciliationStore:
    """
    Endpoint working set keyed by id, in insertion order.

    Mirrors server state: entries are only ever replaced wholesale by an
    authoritative EndpointResponse (`upsert`) or dropped (`remove`), never
    patched field by field.
    """

    def __init__(self, endpoints: Optional[Iterable[EndpointResponse]] = None):
        self._endpoints: Dict[uuid.UUID, EndpointResponse] = {}
        if endpoints is not None:
            self.load(endpoints)

    def __len__(self) -> int:
        return len(self._endpoints)

    def __iter__(self) -> Iterator[EndpointResponse]:
        return iter(list(self._endpoints.values()))

    def __contains__(self, endpoint_id: object) -> bool:
        return endpoint_id in self._endpoints

    # ── Cache maintenance ─────────────────────────────────────────────────

    def load(self, endpoints: Iterable[EndpointResponse]) -> None:
        """Replace the whole working set."""
        self._endpoints = {endpoint.id: endpoint for endpoint in endpoints}

    def upsert(self, endpoint: EndpointResponse) -> None:
        self._endpoints[endpoint.id] = endpoint

    def remove(self, endpoint_id: uuid.UUID) -> Optional[EndpointResponse]:
        return self._endpoints.pop(endpoint_id, None)

    def get(self, endpoint_id: uuid.UUID) -> Optional[EndpointResponse]:
        return self._endpoints.get(endpoint_id)

    def clear(self) -> None:
        self._endpoints.clear()

    # ── Derived views ─────────────────────────────────────────────────────

    def filtered(
        self,
        status_filter: Iterable[StatusLike] = (),
        method_filter: Iterable[MethodLike] = (),
        search_text: str = "",
    ) -> Iterator[EndpointResponse]:
        """Lazily yield the endpoints matching all three predicates."""
        statuses = {EndpointStatus(_upper(s)) for s in status_filter}
        methods = {HttpMethod(_upper(m)) for m in method_filter}
        needle = (search_text or "").strip().lower()

        for endpoint in list(self._endpoints.values()):
            if statuses and endpoint.status not in statuses:
                continue
            if methods and endpoint.method not in methods:
                continue
            if needle and not _matches(endpoint, needle):
                continue
            yield endpoint

    def count_by_status(self, status: StatusLike) -> int:
        status = EndpointStatus(_upper(status))
        return sum(1 for endpoint in self._endpoints.values() if endpoint.status == status)

    def conflicts_count(self) -> int:
        """Endpoints in CONFLICT, not the number of conflict records."""
        return self.count_by_status(EndpointStatus.CONFLICT)

    def synced_count(self) -> int:
        return self.count_by_status(EndpointStatus.SYNCED)

    def status_counts(self) -> Dict[EndpointStatus, int]:
        counts = {status: 0 for status in EndpointStatus}
        for endpoint in self._endpoints.values():
            counts[endpoint.status] += 1
        return counts

    def ids(self) -> List[uuid.UUID]:
        return list(self._endpoints)


def _upper(value: Union[str, EndpointStatus, HttpMethod]) -> str:
    if isinstance(value, (EndpointStatus, HttpMethod)):
        return value.value
    return str(value).strip().upper()


def _matches(endpoint: EndpointResponse, needle: str) -> bool:
    for haystack in (endpoint.name, endpoint.path, endpoint.description):
        if haystack and needle in haystack.lower():
            return True
    return False
