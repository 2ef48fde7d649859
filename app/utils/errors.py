class AuthError(Exception):
    """
    Base class for every failure the account service reports to its callers.

    `status` is the HTTP status the edge layer answers with, `code` a stable
    machine-readable kind.
    """
    default_message = "Authentication error"
    default_code = "auth_error"
    default_status = 400

    def __init__(self, message=None, code=None, status=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.status = status or self.default_status
        super().__init__(self.message)


class ConflictError(AuthError):
    default_message = "Account already exists"
    default_code = "conflict"
    default_status = 409


class NotFoundError(AuthError):
    default_message = "Account not found"
    default_code = "not_found"
    default_status = 404


class InvalidCredentialsError(AuthError):
    default_message = "Invalid email or password"
    default_code = "invalid_credentials"
    default_status = 401


class UnverifiedError(AuthError):
    default_message = "Please verify your email before logging in"
    default_code = "unverified"
    default_status = 403


class InvalidOTPError(AuthError):
    default_message = "Invalid OTP code"
    default_code = "invalid_otp"
    default_status = 400


class OTPExpiredError(AuthError):
    default_message = "OTP has expired. Please request a new one."
    default_code = "otp_expired"
    default_status = 400


class InvalidTokenError(AuthError):
    default_message = "Could not validate credentials"
    default_code = "invalid_token"
    default_status = 401


class TokenExpiredError(AuthError):
    default_message = "Token expired"
    default_code = "token_expired"
    default_status = 401


class InternalError(AuthError):
    default_message = "Internal server error"
    default_code = "internal_error"
    default_status = 500
