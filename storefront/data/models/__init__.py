#import every model so SQLAlchemy registers it in Base.metadata

from storefront.data.models.cart import CartModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.product_inventory import ProductInventoryModel

__all__ = ["CartModel", "OrderModel", "OrderItemModel", "ProductInventoryModel"]
