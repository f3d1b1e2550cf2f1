from chronomarket.models.user import User, SellerAuthentication
from chronomarket.models.listing import Listing

__all__ = ["User", "SellerAuthentication", "Listing"]
