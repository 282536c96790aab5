"""
API Sync Backend - Conflict Detector
=====================================

What:  Compares an endpoint's frontend spec with its backend spec and returns
       the complete set of disagreements between them.
Why:   The endpoint status (SYNCED / CONFLICT) and everything the UI shows
       about a mismatch come from this comparison.
How:   One comparison per concern, each keyed the way that concern is
       identified on the wire (parameter name, lower-cased header name,
       status code, JSON path). Results are sorted by (type, field).
Who:   Called by EndpointAggregate.reconcile(); persisting the result is the
       aggregate's job.

Contract:
    - Pure: no I/O, no hidden state. The same specs always produce the same
      list, so running it twice on unchanged specs is a no-op for the caller.
    - Either spec absent → empty list (nothing to compare against).
    - Works on anything shaped like a spec: ORM `Spec` rows and API
      `SpecIn` payloads expose the same attribute names.

Severity Rules:
    PARAMETER_MISMATCH      required differs → HIGH, type → MEDIUM,
                            description/defaultValue only → LOW.
                            One-sided: HIGH if required, else LOW.
    HEADER_MISMATCH         required → HIGH, value → MEDIUM, description → LOW.
                            One-sided: HIGH if required, else LOW.
    STATUS_CODE_MISMATCH    one-sided 2xx/4xx/5xx → CRITICAL (contract gap),
                            other one-sided codes and detail drift → LOW.
    RESPONSE_MISMATCH       type mismatch at a matched path → HIGH,
                            key or body present on one side only → LOW.
    AUTHENTICATION_MISMATCH exactly one side requires auth → CRITICAL,
                            two different schemes → HIGH.
    METHOD_MISMATCH         reserved; the method is shared by both sides.
"""

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from apisync.config import settings
from apisync.exceptions import DetectorFailureError
from apisync.models.enums import ConflictType, HttpMethod, Severity

logger = logging.getLogger(__name__)

# Status code classes whose absence on one side is a contract gap
_CONTRACT_CLASSES = {2, 4, 5}

_NO_AUTH = "none"


@dataclass(frozen=True)
class DetectedConflict:
    """A conflict as computed, before it is persisted."""

    type: ConflictType
    field: str
    frontend_value: Optional[str]
    backend_value: Optional[str]
    severity: Severity

    @property
    def identity(self) -> Tuple[str, str, Optional[str], Optional[str]]:
        """What makes two detections "the same disagreement"."""
        return (self.type.value, self.field, self.frontend_value, self.backend_value)


# ══════════════════════════════════════════════════════════════════════════
# Value helpers
# ══════════════════════════════════════════════════════════════════════════

def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _text(value: Optional[str]) -> Optional[str]:
    """Blank and missing text compare equal."""
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def _render(value: Any) -> Optional[str]:
    value = _plain(value)
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _kind(value: Any) -> str:
    """JSON type category of a value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


# (attribute, label used in the field path, severity), most severe first
_ParamRule = Tuple[str, str, Severity]

_PARAMETER_RULES: Sequence[_ParamRule] = (
    ("required", "required", Severity.HIGH),
    ("type", "type", Severity.MEDIUM),
    ("description", "description", Severity.LOW),
    ("default_value", "defaultValue", Severity.LOW),
)

_HEADER_RULES: Sequence[_ParamRule] = (
    ("required", "required", Severity.HIGH),
    ("value", "value", Severity.MEDIUM),
    ("description", "description", Severity.LOW),
)


def _attr(item: Any, name: str) -> Any:
    value = _plain(getattr(item, name, None))
    if isinstance(value, str) or value is None:
        return _text(value) if name != "type" else value
    return value


def _describe_parameter(param: Any) -> Optional[str]:
    if param is None:
        return None
    flag = "required" if param.required else "optional"
    return f"{_plain(param.type)}, {flag}"


def _describe_header(header: Any) -> Optional[str]:
    if header is None:
        return None
    flag = "required" if header.required else "optional"
    value = _text(header.value)
    return f"{value}, {flag}" if value else flag


def _describe_status_code(status_code: Any) -> Optional[str]:
    if status_code is None:
        return None
    description = _text(status_code.description)
    return f"{status_code.code} {description}" if description else str(status_code.code)


class ConflictDetector:
    """
    Stateless comparison engine for a pair of specs.

    Args:
        max_depth: Deepest nesting accepted in stored JSON schemas. Deeper
                   values are treated as malformed (DetectorFailureError).
    """

    def __init__(self, max_depth: Optional[int] = None):
        self.max_depth = max_depth if max_depth is not None else settings.max_schema_depth

    def detect(
        self,
        frontend: Optional[Any],
        backend: Optional[Any],
        method: Optional[HttpMethod] = None,
    ) -> List[DetectedConflict]:
        """
        Compute the definitive conflict set for one endpoint.

        `method` is accepted for the day each side can declare its own method
        (METHOD_MISMATCH); today both sides share the endpoint's method.

        Raises:
            DetectorFailureError: A stored schema value is not JSON-shaped or
                                  nests deeper than max_depth.
        """
        if frontend is None or backend is None:
            return []

        conflicts: List[DetectedConflict] = []
        conflicts.extend(self._compare_parameters(frontend, backend))
        conflicts.extend(self._compare_headers(frontend, backend))
        conflicts.extend(self._compare_status_codes(frontend, backend))
        conflicts.extend(self._compare_response_bodies(frontend, backend))
        conflicts.extend(self._compare_authentication(frontend, backend))

        conflicts.sort(key=lambda c: (c.type.value, c.field))
        logger.debug(
            "Detected %d conflict(s) for %s spec pair",
            len(conflicts),
            _plain(method) or "endpoint",
        )
        return conflicts

    # ── Keyed collections (parameters, headers) ───────────────────────────

    def _compare_keyed(
        self,
        conflict_type: ConflictType,
        prefix: str,
        frontend_items: Dict[str, Any],
        backend_items: Dict[str, Any],
        rules: Sequence[_ParamRule],
        describe: Callable[[Any], Optional[str]],
    ) -> Iterator[DetectedConflict]:
        for key in sorted(set(frontend_items) | set(backend_items)):
            fe = frontend_items.get(key)
            be = backend_items.get(key)

            if fe is None or be is None:
                present = fe if fe is not None else be
                yield DetectedConflict(
                    type=conflict_type,
                    field=f"{prefix}.{key}",
                    frontend_value=describe(fe),
                    backend_value=describe(be),
                    severity=Severity.HIGH if present.required else Severity.LOW,
                )
                continue

            # One conflict per item, reported on its most severe difference
            for attribute, label, severity in rules:
                fe_value = _attr(fe, attribute)
                be_value = _attr(be, attribute)
                if fe_value != be_value:
                    yield DetectedConflict(
                        type=conflict_type,
                        field=f"{prefix}.{key}.{label}",
                        frontend_value=_render(fe_value),
                        backend_value=_render(be_value),
                        severity=severity,
                    )
                    break

    def _compare_parameters(self, frontend: Any, backend: Any) -> Iterator[DetectedConflict]:
        return self._compare_keyed(
            ConflictType.PARAMETER_MISMATCH,
            "parameters",
            {p.name: p for p in frontend.parameters or []},
            {p.name: p for p in backend.parameters or []},
            _PARAMETER_RULES,
            _describe_parameter,
        )

    def _compare_headers(self, frontend: Any, backend: Any) -> Iterator[DetectedConflict]:
        # HTTP header names are case-insensitive
        return self._compare_keyed(
            ConflictType.HEADER_MISMATCH,
            "headers",
            {h.name.strip().lower(): h for h in frontend.headers or []},
            {h.name.strip().lower(): h for h in backend.headers or []},
            _HEADER_RULES,
            _describe_header,
        )

    # ── Status codes ──────────────────────────────────────────────────────

    def _compare_status_codes(self, frontend: Any, backend: Any) -> Iterator[DetectedConflict]:
        fe_codes = {int(s.code): s for s in frontend.status_codes or []}
        be_codes = {int(s.code): s for s in backend.status_codes or []}

        for code in sorted(set(fe_codes) | set(be_codes)):
            fe = fe_codes.get(code)
            be = be_codes.get(code)
            field = f"statusCodes.{code}"

            if fe is None or be is None:
                gap = code // 100 in _CONTRACT_CLASSES
                yield DetectedConflict(
                    type=ConflictType.STATUS_CODE_MISMATCH,
                    field=field,
                    frontend_value=_describe_status_code(fe),
                    backend_value=_describe_status_code(be),
                    severity=Severity.CRITICAL if gap else Severity.LOW,
                )
                continue

            self._check_json(fe.response_body, f"frontend.{field}.responseBody")
            self._check_json(be.response_body, f"backend.{field}.responseBody")

            if _canonical(fe.response_body) != _canonical(be.response_body):
                yield DetectedConflict(
                    type=ConflictType.STATUS_CODE_MISMATCH,
                    field=f"{field}.responseBody",
                    frontend_value=_render(fe.response_body),
                    backend_value=_render(be.response_body),
                    severity=Severity.LOW,
                )
            elif _text(fe.description) != _text(be.description):
                yield DetectedConflict(
                    type=ConflictType.STATUS_CODE_MISMATCH,
                    field=f"{field}.description",
                    frontend_value=_text(fe.description),
                    backend_value=_text(be.description),
                    severity=Severity.LOW,
                )

    # ── Response body structure ───────────────────────────────────────────

    def _compare_response_bodies(self, frontend: Any, backend: Any) -> Iterator[DetectedConflict]:
        fe_body = frontend.response_body
        be_body = backend.response_body
        self._check_json(fe_body, "frontend.responseBody")
        self._check_json(be_body, "backend.responseBody")

        if fe_body is None and be_body is None:
            return
        if fe_body is None or be_body is None:
            yield DetectedConflict(
                type=ConflictType.RESPONSE_MISMATCH,
                field="responseBody",
                frontend_value=_render(fe_body),
                backend_value=_render(be_body),
                severity=Severity.LOW,
            )
            return

        yield from self._compare_shapes(fe_body, be_body, "responseBody")

    def _compare_shapes(self, fe: Any, be: Any, path: str) -> Iterator[DetectedConflict]:
        """
        Recursive key-set and type-category comparison.

        - null on either side is an unknown type and matches anything
        - objects: keys compared order-insensitively; a string "type" entry
          (JSON-schema node) is compared by value
        - arrays: compared through their first element, if both have one
        """
        fe_kind, be_kind = _kind(fe), _kind(be)
        if "null" in (fe_kind, be_kind):
            return

        if fe_kind != be_kind:
            yield DetectedConflict(
                type=ConflictType.RESPONSE_MISMATCH,
                field=path,
                frontend_value=fe_kind,
                backend_value=be_kind,
                severity=Severity.HIGH,
            )
            return

        if fe_kind == "array":
            if fe and be:
                yield from self._compare_shapes(fe[0], be[0], f"{path}[]")
            return

        if fe_kind != "object":
            return

        for key in sorted(set(fe) | set(be)):
            child = f"{path}.{key}"
            if key not in be:
                yield DetectedConflict(
                    type=ConflictType.RESPONSE_MISMATCH,
                    field=child,
                    frontend_value=_kind(fe[key]),
                    backend_value=None,
                    severity=Severity.LOW,
                )
            elif key not in fe:
                yield DetectedConflict(
                    type=ConflictType.RESPONSE_MISMATCH,
                    field=child,
                    frontend_value=None,
                    backend_value=_kind(be[key]),
                    severity=Severity.LOW,
                )
            elif key == "type" and isinstance(fe[key], str) and isinstance(be[key], str):
                if fe[key] != be[key]:
                    yield DetectedConflict(
                        type=ConflictType.RESPONSE_MISMATCH,
                        field=child,
                        frontend_value=fe[key],
                        backend_value=be[key],
                        severity=Severity.HIGH,
                    )
            else:
                yield from self._compare_shapes(fe[key], be[key], child)

    def _check_json(self, value: Any, path: str, depth: int = 0) -> None:
        """Reject stored values that are not JSON-shaped or nest too deeply."""
        if depth > self.max_depth:
            raise DetectorFailureError(
                message=f"Schema at '{path}' nests deeper than {self.max_depth} levels",
                path=path,
            )
        if value is None or isinstance(value, (str, bool, int, float)):
            return
        if isinstance(value, list):
            for index, item in enumerate(value):
                self._check_json(item, f"{path}[{index}]", depth + 1)
            return
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise DetectorFailureError(
                        message=f"Schema at '{path}' has a non-string key",
                        path=path,
                    )
                self._check_json(item, f"{path}.{key}", depth + 1)
            return
        raise DetectorFailureError(
            message=f"Schema at '{path}' holds a {type(value).__name__}, not a JSON value",
            path=path,
        )

    # ── Authentication ────────────────────────────────────────────────────

    def _compare_authentication(self, frontend: Any, backend: Any) -> Iterator[DetectedConflict]:
        fe_auth = _normalize_auth(frontend.authentication)
        be_auth = _normalize_auth(backend.authentication)
        if fe_auth.casefold() == be_auth.casefold():
            return

        one_sided = (fe_auth == _NO_AUTH) != (be_auth == _NO_AUTH)
        yield DetectedConflict(
            type=ConflictType.AUTHENTICATION_MISMATCH,
            field="authentication",
            frontend_value=fe_auth,
            backend_value=be_auth,
            severity=Severity.CRITICAL if one_sided else Severity.HIGH,
        )


def _normalize_auth(value: Optional[str]) -> str:
    text = _text(value)
    if text is None or text.lower() == _NO_AUTH:
        return _NO_AUTH
    return text


# ── Singleton Instance ────────────────────────────────────────────────────
conflict_detector = ConflictDetector()
