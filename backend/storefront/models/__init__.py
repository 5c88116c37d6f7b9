from .tenancy import Store
from .catalog import Product, StoreInventory
from .auth import User, SessionToken
from .coupons import Influencer, Coupon, CouponRedemption
from .orders import Order, OrderItem, OrderDelivery
from .points import UserPointsAccount, UserPointsTransaction, InfluencerPointsAccount, InfluencerPointsTransaction
from .security import SecurityEvent
from .customers import Favorite, Address

__all__ = [
    'Store',
    'Product', 'StoreInventory',
    'User', 'SessionToken',
    'Influencer', 'Coupon', 'CouponRedemption',
    'Order', 'OrderItem', 'OrderDelivery',
    'UserPointsAccount', 'UserPointsTransaction',
    'InfluencerPointsAccount', 'InfluencerPointsTransaction',
    'SecurityEvent',
    'Favorite', 'Address',
]
