from .user import User, Role, OTPPurpose
