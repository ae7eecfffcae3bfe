from .rental_routes import bp as rentals_bp
from .extension_routes import bp as extensions_bp
from .dispute_routes import bp as disputes_bp
from .admin_routes import bp as admin_bp
from .payment_routes import bp as payments_bp
from .notification_routes import bp as notifications_bp

__all__ = [
    "rentals_bp",
    "extensions_bp",
    "disputes_bp",
    "admin_bp",
    "payments_bp",
    "notifications_bp",
]
