"""
Closed value sets shared by the ORM models, the API schemas and the detector.

All enums subclass `str` so members compare equal to their wire values
("GET", "frontend", ...) and serialize without conversion.
"""

import enum


class HttpMethod(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class EndpointStatus(str, enum.Enum):
    """Derived endpoint state. Never written by API callers."""

    SYNCED = "SYNCED"
    CONFLICT = "CONFLICT"
    PENDING = "PENDING"
    UNDEFINED = "UNDEFINED"


class SpecSide(str, enum.Enum):
    FRONTEND = "frontend"
    BACKEND = "backend"


class ParameterType(str, enum.Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"
    FILE = "FILE"


class ConflictType(str, enum.Enum):
    # Reserved: method lives on the endpoint, so two specs of one endpoint
    # can never disagree on it. Not produced by the detector.
    METHOD_MISMATCH = "METHOD_MISMATCH"
    PARAMETER_MISMATCH = "PARAMETER_MISMATCH"
    RESPONSE_MISMATCH = "RESPONSE_MISMATCH"
    HEADER_MISMATCH = "HEADER_MISMATCH"
    STATUS_CODE_MISMATCH = "STATUS_CODE_MISMATCH"
    AUTHENTICATION_MISMATCH = "AUTHENTICATION_MISMATCH"


class Severity(str, enum.Enum):
    """Conflict severity, ordered LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}
