# mlm_system/utils/chain_walker.py
"""
Safe MLM chain walking utilities.

Ancestors are resolved through uplineID (live) or referralChain (snapshot).
Descendants are found through referredBy == referralCode.
Both walks guard against cycles left by corrupted data.
"""
from collections import deque
from typing import Optional, Callable, List, Dict, Any
from sqlalchemy.orm import Session
import logging

import config
from models.user import User

logger = logging.getLogger(__name__)


class ChainWalker:
    """
    Utilities for walking the referral network up and down.
    """

    def __init__(self, session: Session):
        self.session = session

    def _get_user(self, user_id: int) -> Optional[User]:
        return self.session.query(User).filter_by(userID=user_id).first()

    def resolve_upline(self, user: User, max_levels: Optional[int] = None) -> List[User]:
        """
        Ordered ancestors of `user`, nearest first, at most `max_levels`.

        The live uplineID chain is used whenever the user has a parent pointer;
        the referralChain snapshot is used only when it does not. A missing
        ancestor ends the walk early without raising.
        """
        if max_levels is None:
            max_levels = config.MAX_UPLINE_LEVELS

        if user.uplineID:
            return self._walk_live(user, max_levels)

        if user.referralChain:
            return self._walk_snapshot(user, max_levels)

        return []

    def _walk_live(self, user: User, max_levels: int) -> List[User]:
        chain = []
        visited = {user.userID}
        current = user

        while current.uplineID and len(chain) < max_levels:
            if current.uplineID in visited:
                logger.error(f"Cycle detected at user {current.uplineID} walking upline of {user.userID}")
                break

            upline_user = self._get_user(current.uplineID)
            if not upline_user:
                logger.warning(
                    f"Upline not found: userID={current.uplineID} for user {current.userID}"
                )
                break

            visited.add(upline_user.userID)
            chain.append(upline_user)
            current = upline_user

        return chain

    def _walk_snapshot(self, user: User, max_levels: int) -> List[User]:
        chain = []
        visited = {user.userID}

        for ancestor_id in user.chainSnapshot[:max_levels]:
            if ancestor_id in visited:
                logger.error(f"Cycle detected in referralChain of user {user.userID}")
                break

            ancestor = self._get_user(ancestor_id)
            if not ancestor:
                logger.warning(
                    f"Snapshot ancestor {ancestor_id} not found for user {user.userID}"
                )
                break

            visited.add(ancestor.userID)
            chain.append(ancestor)

        return chain

    def walk_upline(
            self,
            start_user: User,
            callback: Callable[[User, int], bool],
            max_depth: Optional[int] = None
    ) -> int:
        """
        Call callback(user, level) for each resolved ancestor.
        Returning False from the callback stops the walk.

        Returns:
            Number of users processed
        """
        processed = 0
        for level, upline_user in enumerate(self.resolve_upline(start_user, max_depth), start=1):
            processed += 1
            if not callback(upline_user, level):
                break
        return processed

    def get_direct_referrals(self, user: User) -> List[User]:
        """Users whose referredBy matches this user's referralCode."""
        if not user.referralCode:
            return []
        return self.session.query(User).filter(
            User.referredBy == user.referralCode
        ).order_by(User.userID).all()

    def walk_downline(
            self,
            start_user: User,
            callback: Optional[Callable[[User, int], None]] = None,
            max_depth: Optional[int] = None
    ) -> List[User]:
        """
        Breadth-first walk of the whole descendant subtree (start user excluded).

        Args:
            start_user: Root of the subtree
            callback: Optional function(user, level) for each descendant
            max_depth: Depth limit, None for unbounded

        Returns:
            Descendants in BFS order
        """
        descendants = []
        visited = {start_user.userID}
        queue = deque([(start_user, 0)])

        while queue:
            current, depth = queue.popleft()
            if max_depth is not None and depth >= max_depth:
                continue

            for child in self.get_direct_referrals(current):
                if child.userID in visited:
                    logger.error(f"Cycle detected in downline at user {child.userID}")
                    continue

                visited.add(child.userID)
                descendants.append(child)
                if callback:
                    callback(child, depth + 1)
                queue.append((child, depth + 1))

        return descendants

    def count_downline(self, start_user: User) -> int:
        """Total number of users in the descendant subtree."""
        return len(self.walk_downline(start_user))

    def build_tree(self, root: User, max_depth: int = 3) -> Dict[str, Any]:
        """
        Nested dict of the descendant tree for network views.

        Each node: userID, name, email, referralCode, role, level, children.
        """
        root_node = self._tree_node(root, 0)
        nodes = {root.userID: root_node}
        visited = {root.userID}
        queue = deque([root])

        while queue:
            current = queue.popleft()
            node = nodes[current.userID]
            if node["level"] >= max_depth:
                continue

            for child in self.get_direct_referrals(current):
                if child.userID in visited:
                    continue
                visited.add(child.userID)
                child_node = self._tree_node(child, node["level"] + 1)
                node["children"].append(child_node)
                nodes[child.userID] = child_node
                queue.append(child)

        return root_node

    @staticmethod
    def _tree_node(user: User, level: int) -> Dict[str, Any]:
        return {
            "userID": user.userID,
            "name": user.name,
            "email": user.email,
            "referralCode": user.referralCode,
            "role": user.role,
            "level": level,
            "children": [],
        }
