# models/user.py
"""
User model - central entity for the referral network.

Two independent hierarchy encodings live on the same row:
    uplineID / referralChain   - ancestor side, used for commission
    referralCode / referredBy  - descendant side, used for team volume and rank
"""
from sqlalchemy import Column, Integer, String, JSON, ForeignKey
from sqlalchemy.orm import relationship, backref
from models.base import Base, AuditMixin


class User(Base, AuditMixin):
    __tablename__ = 'users'

    # Primary identification
    userID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    phone = Column(String, nullable=True)

    # admin, franchise_owner, distributor, user
    role = Column(String, default="user", nullable=False, index=True)

    # Ancestor side: live parent pointer + snapshot captured at registration
    uplineID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)
    referralChain = Column(JSON, nullable=True)  # [parentID, grandparentID, ...]

    # Descendant side: string-keyed parent/child link
    referralCode = Column(String, unique=True, nullable=False, index=True)
    referredBy = Column(String, nullable=True, index=True)

    franchiseID = Column(Integer, nullable=True)  # БЕЗ ForeignKey (users <-> franchises cycle)

    # Relationships
    upline = relationship('User', remote_side=[userID], backref=backref('directDownline', passive_deletes=True))

    @property
    def isAdmin(self):
        return self.role == "admin"

    @property
    def chainSnapshot(self):
        """Cached ancestor ids, nearest first."""
        return list(self.referralChain or [])

    def __repr__(self):
        return f"<User(userID={self.userID}, code={self.referralCode}, role={self.role})>"
