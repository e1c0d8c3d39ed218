"""Role capabilities and the messaging eligibility rule.

Routes declare the capability they need (`auth.require`); the table below
is the only place that maps roles to what they may do.
"""

from enum import Enum
from typing import Dict, FrozenSet

from .models import Role


class Capability(str, Enum):
    SUBSCRIBE = "subscribe"
    NOTIFY_PAYMENT = "notify_payment"
    MANAGE_PACKS = "manage_packs"
    CONFIRM_PAYMENTS = "confirm_payments"
    MANAGE_SUBSCRIPTIONS = "manage_subscriptions"
    MANAGE_USERS = "manage_users"
    VIEW_ADMIN_DASHBOARD = "view_admin_dashboard"
    UPLOAD_DOCUMENTS = "upload_documents"
    REVIEW_DOCUMENTS = "review_documents"
    VIEW_ALL_DOCUMENTS = "view_all_documents"
    MANAGE_RESOURCES = "manage_resources"
    TRACK_MEMOIRE = "track_memoire"
    COACH_STUDENTS = "coach_students"
    EDIT_ANY_MEMOIRE = "edit_any_memoire"


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.STUDENT: frozenset({
        Capability.SUBSCRIBE,
        Capability.NOTIFY_PAYMENT,
        Capability.UPLOAD_DOCUMENTS,
        Capability.TRACK_MEMOIRE,
    }),
    Role.ACCOMPAGNATEUR: frozenset({
        Capability.REVIEW_DOCUMENTS,
        Capability.COACH_STUDENTS,
    }),
    Role.ADMIN: frozenset({
        Capability.MANAGE_PACKS,
        Capability.CONFIRM_PAYMENTS,
        Capability.MANAGE_SUBSCRIPTIONS,
        Capability.MANAGE_USERS,
        Capability.VIEW_ADMIN_DASHBOARD,
        Capability.REVIEW_DOCUMENTS,
        Capability.VIEW_ALL_DOCUMENTS,
        Capability.MANAGE_RESOURCES,
        Capability.EDIT_ANY_MEMOIRE,
    }),
}


def has_capability(role: Role, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(Role(role), frozenset())


# (sender, receiver) pairs allowed to open a conversation; admins may
# write to anyone.
_MESSAGING_PAIRS = frozenset({
    (Role.STUDENT, Role.ACCOMPAGNATEUR),
    (Role.STUDENT, Role.ADMIN),
    (Role.ACCOMPAGNATEUR, Role.STUDENT),
    (Role.ACCOMPAGNATEUR, Role.ADMIN),
})


def can_message(sender_role: Role, receiver_role: Role) -> bool:
    """Return True if a user with `sender_role` may message `receiver_role`.

    Student to student and coach to coach conversations are never allowed.
    """
    sender, receiver = Role(sender_role), Role(receiver_role)
    if sender == Role.ADMIN:
        return True
    return (sender, receiver) in _MESSAGING_PAIRS
