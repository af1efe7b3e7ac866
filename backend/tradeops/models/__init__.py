from .catalog import Supplier, Product
from .stock import StockMovement, StockReference, ReferenceType, ImmutableRecordError
from .orders import Order, OrderItem, OrderPayment
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .shipping import ShippingCompany, Shipment
from .documents import DocumentSequence

__all__ = [
    'Supplier', 'Product',
    'StockMovement', 'StockReference', 'ReferenceType', 'ImmutableRecordError',
    'Order', 'OrderItem', 'OrderPayment',
    'PurchaseOrder', 'PurchaseOrderItem',
    'ShippingCompany', 'Shipment',
    'DocumentSequence',
]
