# models/order.py
"""
Order and OrderItem models.

Order.commissions is a denormalized cache of the ledger postings for the order:
    {"self": [...], "mlm": [...], "franchise": {...}}
The earnings table stays the source of truth.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship, backref
from models.base import Base, AuditMixin


def _empty_commissions():
    return {"self": [], "mlm": [], "franchise": {}}


class Order(Base, AuditMixin):
    __tablename__ = 'orders'

    # Primary key
    orderID = Column(Integer, primary_key=True, autoincrement=True)

    # Buyer
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Totals
    totalAmount = Column(DECIMAL(12, 2), nullable=False)
    totalPV = Column(DECIMAL(12, 2), default=0)
    totalBV = Column(DECIMAL(12, 2), default=0)

    # pending, processing, approved, shipped, delivered, cancelled, returned
    status = Column(String, default="pending", nullable=False, index=True)
    orderType = Column(String, default="online", nullable=False)  # online, offline

    franchiseID = Column(Integer, ForeignKey('franchises.franchiseID'), nullable=True)

    commissions = Column(JSON, nullable=True, default=_empty_commissions)
    deliveredAt = Column(DateTime, nullable=True)

    # Relationships
    user = relationship('User', backref=backref('orders', passive_deletes=True))
    franchise = relationship('Franchise', backref='orders')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderItem.itemID')

    def __repr__(self):
        return f"<Order(orderID={self.orderID}, user={self.userID}, total={self.totalAmount}, status={self.status})>"


class OrderItem(Base):
    __tablename__ = 'order_items'

    itemID = Column(Integer, primary_key=True, autoincrement=True)
    orderID = Column(Integer, ForeignKey('orders.orderID'), nullable=False, index=True)

    # Denormalized product snapshot (catalog lives outside this system)
    productID = Column(Integer, nullable=True)
    productName = Column(String, nullable=False)
    productPrice = Column(DECIMAL(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    pv = Column(DECIMAL(12, 2), default=0)
    selfCommissionRate = Column(DECIMAL(5, 2), default=0)  # Процент (5 = 5%)

    order = relationship('Order', back_populates='items')

    def __repr__(self):
        return f"<OrderItem(itemID={self.itemID}, product={self.productName}, qty={self.quantity})>"
