"""
Package validator - picks the subscription a booking is charged to.
"""

import logging

from slot_engine.exceptions import NoActiveSubscription, PackageNotAllowedForSlot
from slot_engine.models import PackageSubscription, SlotOccurrence

logger = logging.getLogger(__name__)


class PackageValidator:
    """Checks that a student's active subscription may be used for an occurrence"""

    def __init__(self, subscription_repository):
        self.subscription_repository = subscription_repository

    def validate(self, student_id: str, occurrence: SlotOccurrence) -> PackageSubscription:
        """
        Select the subscription to book an occurrence with.

        The first Active subscription in repository order wins; when the
        occurrence restricts packages, the first Active one whose package
        is allowed. With several Active subscriptions of different scopes
        this order is the only tie-break.

        Raises:
            NoActiveSubscription: the student has no Active subscription
            PackageNotAllowedForSlot: no Active subscription's package is allowed
            RepositoryUnavailable: the subscription store failed
        """
        subscriptions = self.subscription_repository.list_by_student(student_id)
        active = [s for s in subscriptions if s.is_active]

        if not active:
            logger.info(f"Student {student_id} has no active subscription ({len(subscriptions)} total)")
            raise NoActiveSubscription(student_id)

        if not occurrence.allowed_package_ids:
            return active[0]

        for subscription in active:
            if subscription.package_id in occurrence.allowed_package_ids:
                return subscription

        logger.info(
            f"None of {len(active)} active package(s) of student {student_id} "
            f"is allowed for slot {occurrence.id}"
        )
        raise PackageNotAllowedForSlot(student_id, occurrence.id)
