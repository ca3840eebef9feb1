# mlm_system/services/network_service.py
"""
Network service - registration into the referral tree and tree maintenance.
"""
import secrets
import string
from typing import Dict, Optional, Any
from sqlalchemy.orm import Session
import logging

import config
from models import User, UserRank, RankHistory
from mlm_system.config.commissions import UserRole
from mlm_system.exceptions import ValidationError, NotFoundError
from mlm_system.services.volume_service import VolumeService
from mlm_system.utils.chain_walker import ChainWalker
from mlm_system.events.event_bus import eventBus, MLMEvents

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_ATTEMPTS = 20


class NetworkService:
    """Service for the shape of the referral network."""

    def __init__(self, session: Session):
        self.session = session
        self.walker = ChainWalker(session)

    async def registerUser(
            self,
            name: str,
            email: str,
            phone: Optional[str] = None,
            referredBy: Optional[str] = None,
            role: str = UserRole.USER.value
    ) -> User:
        """
        Create a user under the owner of `referredBy`.

        Without a valid referral code the user is attached to the admin anchor
        (uplineID and referralChain only; referredBy stays empty).
        """
        if not name or not email:
            raise ValidationError("Name and email are required")
        if role not in {r.value for r in UserRole}:
            raise ValidationError(f"Unknown role: {role}")
        if self.session.query(User.userID).filter_by(email=email).first():
            raise ValidationError(f"User with email {email} already exists")

        referrer = None
        if isinstance(referredBy, str) and referredBy.strip():
            referrer = self.session.query(User).filter_by(referralCode=referredBy.strip()).first()
            if not referrer:
                logger.warning(f"Referral code {referredBy} not found, using admin anchor")

        parent = referrer or self._getAdminAnchor()

        user = User(
            name=name,
            email=email,
            phone=phone,
            role=role,
            referralCode=self._generateReferralCode(),
            referredBy=referrer.referralCode if referrer else None,
            uplineID=parent.userID if parent else None,
            referralChain=([parent.userID] + parent.chainSnapshot) if parent else []
        )
        self.session.add(user)
        self.session.flush()

        logger.info(
            f"Registered user {user.userID} ({email}) under "
            f"{parent.userID if parent else 'nobody (root)'}, code {user.referralCode}"
        )

        await eventBus.emit(MLMEvents.USER_REGISTERED, {
            "userID": user.userID,
            "uplineID": user.uplineID,
            "referredBy": user.referredBy
        })

        return user

    async def removeUser(self, userId: int) -> Dict:
        """
        Delete a user, promoting its direct children (by uplineID) to its parent.

        referredBy codes and referralChain snapshots of other users are not touched.
        """
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            logger.warning(f"User {userId} not found for removal")
            return {"success": False, "error": "User not found"}

        newParentId = user.uplineID
        children = self.session.query(User).filter(User.uplineID == userId).all()

        for child in children:
            child.uplineID = newParentId
        self.session.flush()

        # Коллекция directDownline устарела после перепривязки
        self.session.expire(user, ['directDownline'])

        userRank = self.session.query(UserRank).filter_by(userID=userId).first()
        if userRank:
            self.session.delete(userRank)
        self.session.query(RankHistory).filter_by(userID=userId).delete(synchronize_session=False)
        self.session.flush()

        self.session.delete(user)
        self.session.flush()

        relinked = [child.userID for child in children]
        logger.info(f"User {userId} removed, children {relinked} moved to {newParentId}")

        await eventBus.emit(MLMEvents.USER_REMOVED, {
            "userID": userId,
            "newParentID": newParentId,
            "relinked": relinked
        })

        return {"success": True, "userID": userId, "newParentID": newParentId, "relinked": relinked}

    async def getNetworkTree(self, userId: int, depth: int = 3) -> Dict[str, Any]:
        """Descendant tree (referredBy side) down to `depth` levels."""
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")
        return self.walker.build_tree(user, max_depth=depth)

    async def getTeamStats(self, userId: int) -> Dict[str, Any]:
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")
        return await VolumeService(self.session).getTeamStats(user)

    def _getAdminAnchor(self) -> Optional[User]:
        if config.ADMIN_ANCHOR_EMAIL:
            anchor = self.session.query(User).filter_by(email=config.ADMIN_ANCHOR_EMAIL).first()
            if anchor:
                return anchor
            logger.warning(f"Admin anchor {config.ADMIN_ANCHOR_EMAIL} not found, using first admin")

        return self.session.query(User).filter_by(
            role=UserRole.ADMIN.value
        ).order_by(User.userID).first()

    def _generateReferralCode(self) -> str:
        for _ in range(_CODE_ATTEMPTS):
            code = ''.join(secrets.choice(_CODE_ALPHABET) for _ in range(config.REFERRAL_CODE_LENGTH))
            if not self.session.query(User.userID).filter_by(referralCode=code).first():
                return code
        raise ValidationError("Could not generate a unique referral code")
