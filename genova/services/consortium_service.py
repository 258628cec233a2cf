# genova/services/consortium_service.py
"""Consortium revenue-share policy."""

from decimal import Decimal
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ForbiddenException, NotFoundException, ValidationException
from ..core.money import to_decimal
from ..core.timezone_utils import Clock
from ..models.consortium import ConsortiumMember
from ..models.user import User
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

SHARE_TOLERANCE = Decimal("0.01")


class ConsortiumService(BaseService):
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_consortium_repository(db)
        self.member_repository = RepositoryFactory.create_base_repository(db, ConsortiumMember)

    @BaseService.measure_operation("update_revenue_shares")
    def update_revenue_shares(
        self, consortium_id: str, shares: Dict[str, Decimal], actor: User
    ) -> List[ConsortiumMember]:
        """
        Replace the revenue shares of a consortium's members.

        Shares are percentages keyed by tutor id and must cover exactly the
        current members and sum to 100. Settlement trusts these values.

        Raises:
            NotFoundException: Unknown consortium
            ForbiddenException: Actor did not create the consortium
            ValidationException: Unknown member, missing member, or bad total
        """
        consortium = self.repository.get_by_id(consortium_id, load_relationships=False)
        if consortium is None:
            raise NotFoundException("Consortium not found")
        if consortium.created_by != actor.id:
            raise ForbiddenException("Only the consortium creator can update revenue shares")

        members = {m.tutor_id: m for m in self.repository.get_members(consortium_id)}
        unknown = sorted(set(shares) - set(members))
        if unknown:
            raise ValidationException(
                "Revenue shares reference tutors outside the consortium",
                details={"tutor_ids": unknown},
            )
        missing = sorted(set(members) - set(shares))
        if missing:
            raise ValidationException(
                "Every consortium member needs a revenue share",
                details={"tutor_ids": missing},
            )
        values = {tutor_id: to_decimal(value) for tutor_id, value in shares.items()}
        if any(value < 0 or value > 100 for value in values.values()):
            raise ValidationException("Revenue shares must be between 0 and 100")
        total = sum(values.values(), Decimal("0"))
        if abs(total - Decimal("100")) > SHARE_TOLERANCE:
            raise ValidationException(
                "Consortium revenue shares must sum to 100%", details={"total": str(total)}
            )

        with self.transaction():
            for tutor_id, value in values.items():
                self.member_repository.update(members[tutor_id].id, revenue_share=value)

        logger.info(f"Updated revenue shares for consortium {consortium_id}")
        return list(members.values())
