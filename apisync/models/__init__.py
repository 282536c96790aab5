# Importing every model registers it on Base.metadata (Alembic, create_all).
from apisync.models.conflict import Conflict
from apisync.models.endpoint import Endpoint
from apisync.models.enums import (
    ConflictType,
    EndpointStatus,
    HttpMethod,
    ParameterType,
    Severity,
    SpecSide,
)
from apisync.models.project import Project
from apisync.models.spec import Header, Parameter, Spec, StatusCode

__all__ = [
    "Conflict",
    "ConflictType",
    "Endpoint",
    "EndpointStatus",
    "Header",
    "HttpMethod",
    "Parameter",
    "ParameterType",
    "Project",
    "Severity",
    "Spec",
    "SpecSide",
    "StatusCode",
]
