# mlm_system/services/rank_service.py
"""
Rank management service for MLM system.

Rank progression is pull-based: recomputeRankProgress must be called explicitly
(by a dashboard request or by checkAllRanks). It advances at most one level per call.
"""
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, List, Any
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.exc import IntegrityError
import logging

from models import User, Rank, UserRank, RankHistory
from models.mlm.user_rank import _empty_progress
from mlm_system.exceptions import ValidationError, NotFoundError
from mlm_system.services.volume_service import VolumeService
from mlm_system.utils.time_machine import timeMachine
from mlm_system.events.event_bus import eventBus, MLMEvents

logger = logging.getLogger(__name__)

# Ключи запроса -> колонки Rank
_COUNT_COLUMNS = {
    "directReferrals": "directReferralsRequired",
    "teamSize": "teamSizeRequired",
}
_REQUIREMENT_COLUMNS = {
    "teamSales": "teamSalesRequired",
    "personalPV": "personalPVRequired",
    "teamPV": "teamPVRequired",
}
_REWARD_COLUMNS = {
    "commission": "commissionReward",
    "bonus": "bonusReward",
}


class RankService:
    """Service for managing user ranks and qualifications."""

    def __init__(self, session: Session):
        self.session = session
        self.volumes = VolumeService(session)

    async def recomputeRankProgress(self, userId: int) -> Optional[UserRank]:
        """
        Recompute this month's personal/team PV and advance the user by at most one rank.

        Returns:
            Updated UserRank, or None when the user is unknown or no ranks exist
        """
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            logger.warning(f"User {userId} not found for rank recompute")
            return None

        window = timeMachine.currentMonthRange
        personalPV = await self.volumes.getPersonalPV(user.userID, window)
        teamPV = await self.volumes.getTeamPV(user, window, personalPV=personalPV)

        userRank = await self._getOrCreateUserRank(user)
        if not userRank:
            logger.warning(f"No ranks defined, user {userId} has no rank")
            return None

        nextRank = self._nextRank(userRank.currentRank)
        achieved = None

        if nextRank and self._meetsPVRequirements(nextRank, personalPV, teamPV):
            achieved = await self._advance(userRank, nextRank, personalPV, teamPV)

        # Остальные поля progress не трогаем
        progress = dict(userRank.progress or _empty_progress())
        progress["personalPV"] = str(personalPV)
        progress["teamPV"] = str(teamPV)
        userRank.progress = progress
        flag_modified(userRank, 'progress')
        userRank.lastUpdated = timeMachine.now
        self.session.flush()

        logger.info(
            f"Rank progress for user {userId} ({timeMachine.currentMonth}): personalPV={personalPV}, teamPV={teamPV}, "
            f"rank={userRank.currentRank.name}"
        )

        if achieved:
            await eventBus.emit(MLMEvents.RANK_ACHIEVED, {
                "userID": userId,
                "previousRank": achieved["previousRank"],
                "newRank": achieved["newRank"],
                "reward": achieved["reward"]
            })

        return userRank

    async def getUserRank(self, userId: int) -> Dict[str, Any]:
        """Current rank, next rank, progress, achievements and history (lazy create)."""
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")

        userRank = await self._getOrCreateUserRank(user)
        if not userRank:
            return {
                "currentRank": None,
                "nextRank": None,
                "progress": _empty_progress(),
                "achievements": [],
                "rankHistory": []
            }

        history = self.session.query(RankHistory).filter_by(
            userID=userId
        ).order_by(RankHistory.achievedAt, RankHistory.historyID).all()

        return {
            "currentRank": userRank.currentRank,
            "nextRank": self._nextRank(userRank.currentRank),
            "progress": dict(userRank.progress or {}),
            "achievements": list(userRank.achievements or []),
            "rankHistory": history
        }

    async def listRanks(self) -> List[Rank]:
        return self.session.query(Rank).order_by(Rank.level).all()

    async def createRank(self, data: Dict[str, Any]) -> Rank:
        """
        Create a rank from {"name", "level", "requirements": {...}, "rewards": {...},
        "benefits", "icon", "color"}.
        """
        name = data.get("name")
        level = data.get("level")
        if not name:
            raise ValidationError("Rank name is required")
        if not isinstance(level, int) or isinstance(level, bool) or level < 1:
            raise ValidationError("Rank level must be a positive integer")

        if self.session.query(Rank).filter_by(level=level).first():
            raise ValidationError(f"Rank with level {level} already exists")
        if self.session.query(Rank).filter_by(name=name).first():
            raise ValidationError(f"Rank '{name}' already exists")

        rank = Rank(name=name, level=level)
        self._applyRankData(rank, data)
        self.session.add(rank)
        self.session.flush()

        logger.info(f"Rank created: {rank.name} (level {rank.level})")
        return rank

    async def updateRank(self, rankId: int, data: Dict[str, Any]) -> Rank:
        rank = self.session.query(Rank).filter_by(rankID=rankId).first()
        if not rank:
            raise NotFoundError(f"Rank {rankId} not found")

        if "level" in data and data["level"] != rank.level:
            level = data["level"]
            if not isinstance(level, int) or isinstance(level, bool) or level < 1:
                raise ValidationError("Rank level must be a positive integer")
            if self.session.query(Rank).filter_by(level=level).first():
                raise ValidationError(f"Rank with level {level} already exists")
            rank.level = level

        if data.get("name"):
            rank.name = data["name"]

        self._applyRankData(rank, data)
        self.session.flush()

        logger.info(f"Rank {rankId} updated")
        return rank

    async def deleteRank(self, rankId: int) -> bool:
        rank = self.session.query(Rank).filter_by(rankID=rankId).first()
        if not rank:
            raise NotFoundError(f"Rank {rankId} not found")

        inUse = self.session.query(UserRank.userRankID).filter_by(currentRankID=rankId).first()
        if inUse:
            raise ValidationError(f"Rank {rank.name} is held by users and cannot be deleted")

        self.session.delete(rank)
        self.session.flush()

        logger.info(f"Rank {rankId} deleted")
        return True

    async def addAchievement(
            self,
            userId: int,
            name: str,
            description: Optional[str] = None,
            reward=0,
            achievementType: str = "custom"
    ) -> UserRank:
        userRank = self.session.query(UserRank).filter_by(userID=userId).first()
        if not userRank:
            raise NotFoundError(f"User rank for {userId} not found")

        self._appendAchievement(userRank, name, description, reward, achievementType)
        self.session.flush()

        logger.info(f"Achievement '{name}' added for user {userId}")
        return userRank

    async def refreshTeamStats(self, userId: int) -> Optional[UserRank]:
        """Fill directReferrals, teamSize and teamSales of the progress snapshot."""
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            logger.warning(f"User {userId} not found for team stats")
            return None

        userRank = await self._getOrCreateUserRank(user)
        if not userRank:
            return None

        stats = await self.volumes.getTeamStats(user)

        progress = dict(userRank.progress or _empty_progress())
        progress["directReferrals"] = stats["directReferrals"]
        progress["teamSize"] = stats["teamSize"]
        progress["teamSales"] = str(stats["teamSales"])
        userRank.progress = progress
        flag_modified(userRank, 'progress')
        userRank.lastUpdated = timeMachine.now
        self.session.flush()

        return userRank

    async def checkAllRanks(self) -> Dict[str, int]:
        """Recompute rank progress for all users."""
        results = {
            "checked": 0,
            "updated": 0,
            "errors": 0
        }

        userIds = [row[0] for row in self.session.query(User.userID).order_by(User.userID).all()]

        for userId in userIds:
            try:
                results["checked"] += 1

                with self.session.begin_nested():
                    before = self._countPromotions(userId)
                    await self.recomputeRankProgress(userId)

                if self._countPromotions(userId) > before:
                    results["updated"] += 1
            except Exception as e:
                logger.error(f"Error checking rank for user {userId}: {e}")
                results["errors"] += 1

        self.session.commit()

        logger.info(
            f"Rank check complete: checked={results['checked']}, "
            f"updated={results['updated']}, errors={results['errors']}"
        )

        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _getOrCreateUserRank(self, user: User) -> Optional[UserRank]:
        userRank = self.session.query(UserRank).filter_by(userID=user.userID).first()
        if userRank:
            return userRank

        lowestRank = self.session.query(Rank).order_by(Rank.level.asc()).first()
        if not lowestRank:
            return None

        try:
            with self.session.begin_nested():
                userRank = UserRank(
                    userID=user.userID,
                    currentRankID=lowestRank.rankID,
                    progress=_empty_progress(),
                    achievements=[]
                )
                self.session.add(userRank)
                self.session.add(RankHistory(
                    userID=user.userID,
                    previousRankID=None,
                    rankID=lowestRank.rankID,
                    qualificationMethod="initial"
                ))
        except IntegrityError:
            # Создан параллельным запросом
            return self.session.query(UserRank).filter_by(userID=user.userID).first()

        logger.info(f"User {user.userID} starts at rank {lowestRank.name}")
        return userRank

    @staticmethod
    def _meetsPVRequirements(rank: Rank, personalPV: Decimal, teamPV: Decimal) -> bool:
        # directReferrals, teamSize, teamSales в проверке не участвуют
        requirements = rank.requirements
        return personalPV >= Decimal(str(requirements["personalPV"] or 0)) \
            and teamPV >= Decimal(str(requirements["teamPV"] or 0))

    def _countPromotions(self, userId: int) -> int:
        return self.session.query(RankHistory).filter_by(
            userID=userId, qualificationMethod="natural"
        ).count()

    def _nextRank(self, currentRank: Optional[Rank]) -> Optional[Rank]:
        if not currentRank:
            return None
        return self.session.query(Rank).filter_by(level=currentRank.level + 1).first()

    async def _advance(self, userRank: UserRank, nextRank: Rank, personalPV: Decimal, teamPV: Decimal) -> Dict:
        previousRank = userRank.currentRank

        userRank.currentRankID = nextRank.rankID
        userRank.currentRank = nextRank

        self.session.add(RankHistory(
            userID=userRank.userID,
            previousRankID=previousRank.rankID if previousRank else None,
            rankID=nextRank.rankID,
            personalPV=personalPV,
            teamPV=teamPV,
            qualificationMethod="natural"
        ))

        self._appendAchievement(
            userRank,
            f"Reached {nextRank.name} Rank",
            f"Successfully achieved {nextRank.name} rank",
            nextRank.bonusReward,
            "rank_up"
        )

        logger.info(
            f"User {userRank.userID} rank updated: "
            f"{previousRank.name if previousRank else None} -> {nextRank.name}"
        )

        return {
            "previousRank": previousRank.name if previousRank else None,
            "newRank": nextRank.name,
            "reward": str(nextRank.bonusReward or 0)
        }

    @staticmethod
    def _appendAchievement(userRank: UserRank, name, description, reward, achievementType):
        achievements = list(userRank.achievements or [])
        achievements.append({
            "name": name,
            "description": description,
            "date": timeMachine.now.isoformat(),
            "reward": str(reward or 0),
            "type": achievementType
        })
        userRank.achievements = achievements
        flag_modified(userRank, 'achievements')

    @staticmethod
    def _applyRankData(rank: Rank, data: Dict[str, Any]):
        for key, column in _COUNT_COLUMNS.items():
            value = (data.get("requirements") or {}).get(key)
            if value is not None:
                setattr(rank, column, int(_nonNegative(value, f"requirements.{key}")))

        for key, column in _REQUIREMENT_COLUMNS.items():
            value = (data.get("requirements") or {}).get(key)
            if value is not None:
                setattr(rank, column, _nonNegative(value, f"requirements.{key}"))

        for key, column in _REWARD_COLUMNS.items():
            value = (data.get("rewards") or {}).get(key)
            if value is not None:
                setattr(rank, column, _nonNegative(value, f"rewards.{key}"))

        for field in ("benefits", "icon", "color"):
            if field in data:
                setattr(rank, field, data[field])


def _nonNegative(value, field: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite() or number < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return number
