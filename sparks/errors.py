"""
Error hierarchy for the sparks core.

All failures are validation or policy decisions; none of them leave
the stores partially updated. The HTTP adapter maps each error onto
its http_status.
"""


class SparkError(Exception):
    """Base exception for all sparks errors."""

    code = "spark_error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PolicyViolation(SparkError):
    """A write was refused by the group's policy (e.g. anonymous posting)."""

    code = "policy_violation"
    http_status = 403


class GroupNotFound(SparkError):
    """The group id is unknown or the group has already expired."""

    code = "group_not_found"
    http_status = 404

    def __init__(self, group_id: str):
        super().__init__(f"group {group_id} not found or expired")
        self.group_id = group_id


class LocationUnavailable(SparkError):
    """Raised by location providers when no reading can be obtained."""

    code = "location_unavailable"
    http_status = 503
