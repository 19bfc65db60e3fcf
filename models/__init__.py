from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .login_attempt import LoginAttempt
from .email_otp import EmailOTP
from .location import Location
from .ground import Ground
from .booking import Booking
from .booking_order import BookingOrder
