"""
Audit event types.

The enumeration is fixed: values are part of every entry's canonical
encoding, so renaming one is a breaking change for existing chains.
"""

from enum import Enum
from typing import Union

from .errors import InvalidEventType


class EventCategory(str, Enum):
    AUTHENTICATION = "authentication"
    USER_MANAGEMENT = "user_management"
    DATA_ACCESS = "data_access"
    SYSTEM = "system"
    INTEGRATION = "integration"


class AuditEventType(str, Enum):
    """Security-relevant event kinds recorded in the audit log."""

    # Authentication
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    LOGOUT = "logout"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR_ENABLE = "two_factor_enable"
    TWO_FACTOR_DISABLE = "two_factor_disable"
    TWO_FACTOR_SUCCESS = "two_factor_success"
    TWO_FACTOR_FAILURE = "two_factor_failure"

    # User management
    USER_CREATE = "user_create"
    USER_UPDATE = "user_update"
    USER_DELETE = "user_delete"
    USER_ROLE_CHANGE = "user_role_change"

    # Data access
    DATA_ACCESS = "data_access"
    DATA_EXPORT = "data_export"
    DATA_MODIFICATION = "data_modification"
    DATA_DELETION = "data_deletion"

    # System
    SYSTEM_CONFIGURATION_CHANGE = "system_configuration_change"
    SYSTEM_BACKUP = "system_backup"
    SYSTEM_RESTORE = "system_restore"

    # Integration
    INTEGRATION_ACCESS = "integration_access"
    INTEGRATION_CONFIGURATION_CHANGE = "integration_configuration_change"

    @property
    def category(self) -> EventCategory:
        return _CATEGORIES[self]

    @classmethod
    def parse(cls, value: Union["AuditEventType", str]) -> "AuditEventType":
        """
        Resolve a member or its string value.

        Raises:
            InvalidEventType: If value is not a known event type
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidEventType(f"unknown audit event type: {value!r}") from None


_CATEGORIES = {
    AuditEventType.LOGIN_SUCCESS: EventCategory.AUTHENTICATION,
    AuditEventType.LOGIN_FAILURE: EventCategory.AUTHENTICATION,
    AuditEventType.LOGOUT: EventCategory.AUTHENTICATION,
    AuditEventType.PASSWORD_CHANGE: EventCategory.AUTHENTICATION,
    AuditEventType.PASSWORD_RESET: EventCategory.AUTHENTICATION,
    AuditEventType.TWO_FACTOR_ENABLE: EventCategory.AUTHENTICATION,
    AuditEventType.TWO_FACTOR_DISABLE: EventCategory.AUTHENTICATION,
    AuditEventType.TWO_FACTOR_SUCCESS: EventCategory.AUTHENTICATION,
    AuditEventType.TWO_FACTOR_FAILURE: EventCategory.AUTHENTICATION,
    AuditEventType.USER_CREATE: EventCategory.USER_MANAGEMENT,
    AuditEventType.USER_UPDATE: EventCategory.USER_MANAGEMENT,
    AuditEventType.USER_DELETE: EventCategory.USER_MANAGEMENT,
    AuditEventType.USER_ROLE_CHANGE: EventCategory.USER_MANAGEMENT,
    AuditEventType.DATA_ACCESS: EventCategory.DATA_ACCESS,
    AuditEventType.DATA_EXPORT: EventCategory.DATA_ACCESS,
    AuditEventType.DATA_MODIFICATION: EventCategory.DATA_ACCESS,
    AuditEventType.DATA_DELETION: EventCategory.DATA_ACCESS,
    AuditEventType.SYSTEM_CONFIGURATION_CHANGE: EventCategory.SYSTEM,
    AuditEventType.SYSTEM_BACKUP: EventCategory.SYSTEM,
    AuditEventType.SYSTEM_RESTORE: EventCategory.SYSTEM,
    AuditEventType.INTEGRATION_ACCESS: EventCategory.INTEGRATION,
    AuditEventType.INTEGRATION_CONFIGURATION_CHANGE: EventCategory.INTEGRATION,
}
