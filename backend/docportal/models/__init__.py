from .sedes import Sede, SedeToken, AdminSedeAccess
from .orders import PurchaseOrder, Document, FILE_TYPES, FILE_TYPE_PURCHASE_ORDER_COPY, FILE_TYPE_DELIVERY_NOTE
from .auth import AdminUser, AdminSession, ClientSession
from .security import SecurityEvent

__all__ = [
    'Sede', 'SedeToken', 'AdminSedeAccess',
    'PurchaseOrder', 'Document',
    'FILE_TYPES', 'FILE_TYPE_PURCHASE_ORDER_COPY', 'FILE_TYPE_DELIVERY_NOTE',
    'AdminUser', 'AdminSession', 'ClientSession',
    'SecurityEvent',
]
