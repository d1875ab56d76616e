"""Operations and permission levels shared by the models and the permission engine."""

import enum


class Operation(str, enum.Enum):
    """Capability an operation on a project needs."""

    READ = "read"
    WRITE = "write"


class PermissionLevel(str, enum.Enum):
    """Capability tier on a project. read-write includes both read and write."""

    READ = "read"
    WRITE = "write"
    READ_WRITE = "read-write"

    def allows(self, operation: Operation) -> bool:
        """True if this level includes the requested operation."""
        return operation in _CAPABILITIES[self]


_CAPABILITIES = {
    PermissionLevel.READ: frozenset({Operation.READ}),
    PermissionLevel.WRITE: frozenset({Operation.WRITE}),
    PermissionLevel.READ_WRITE: frozenset({Operation.READ, Operation.WRITE}),
}
