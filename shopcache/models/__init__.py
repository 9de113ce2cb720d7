from shopcache.models.shop import CamelModel, Shop, ShopType
from shopcache.models.user import User, UserDTO
from shopcache.models.voucher import SeckillVoucher, VoucherOrder

__all__ = [
    "CamelModel",
    "SeckillVoucher",
    "Shop",
    "ShopType",
    "User",
    "UserDTO",
    "VoucherOrder",
]
