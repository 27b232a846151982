from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    PHYSICIAN = "PHYSICIAN"
    CAREGIVER = "CAREGIVER"
    FAMILY = "FAMILY"


# Role groups used by the alert and alert-rule routes
ALERT_READERS = [Role.PHYSICIAN, Role.CAREGIVER, Role.FAMILY]
ALERT_RESPONDERS = [Role.PHYSICIAN, Role.CAREGIVER]
RULE_READERS = [Role.PHYSICIAN, Role.CAREGIVER]
RULE_AUTHORS = [Role.PHYSICIAN]
