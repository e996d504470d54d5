from .health import health_bp
from .auth import auth_bp
from .shops import shop_bp
from .booking import booking_bp
from .payments import payments_bp
from .uploads import uploads_bp
