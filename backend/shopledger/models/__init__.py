from .catalog import Product, ProductPriceTier, StockMovement, AppendOnlyViolation, STOCK_MOVEMENT_KINDS
from .parties import Customer, Supplier, CUSTOMER_TYPES
from .pricing import WholesalePriceEntry, Promotion, PromotionProduct, PromotionTier
from .orders import Order, OrderItem, ORDER_TYPES, ORDER_STATUSES
from .cash import CashMovement, CASH_MOVEMENT_KINDS, CASH_INFLOW_KINDS
from .documents import DocumentSequence

__all__ = [
    'Product', 'ProductPriceTier', 'StockMovement', 'AppendOnlyViolation', 'STOCK_MOVEMENT_KINDS',
    'Customer', 'Supplier', 'CUSTOMER_TYPES',
    'WholesalePriceEntry', 'Promotion', 'PromotionProduct', 'PromotionTier',
    'Order', 'OrderItem', 'ORDER_TYPES', 'ORDER_STATUSES',
    'CashMovement', 'CASH_MOVEMENT_KINDS', 'CASH_INFLOW_KINDS',
    'DocumentSequence',
]
