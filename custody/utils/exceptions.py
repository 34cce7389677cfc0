class ServiceError(Exception):
    status = 400

    def __init__(self, code="SERVICE_ERROR", message="Service error", details=None, status=None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status is not None:
            self.status = status
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message="Invalid input data", details=None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(ServiceError):
    status = 404

    def __init__(self, message="Resource not found", code="NOT_FOUND", details=None):
        super().__init__(code, message, details)


class WalletNotFound(NotFoundError):
    def __init__(self, user_id=None):
        super().__init__(
            "Wallet not found",
            code="WALLET_NOT_FOUND",
            details={"user_id": user_id} if user_id is not None else None,
        )


class InvalidAddress(ServiceError):
    def __init__(self, address=None):
        super().__init__(
            "INVALID_ADDRESS",
            "Invalid recipient address",
            {"address": address} if address else None,
        )


class InsufficientFunds(ServiceError):
    PRINCIPAL = "principal"
    FEE = "fee"

    def __init__(self, reason, token_type, required=None, available=None):
        self.reason = reason
        if reason == self.FEE:
            message = "Insufficient TRX for network fees"
        else:
            message = f"Insufficient {token_type} balance"
        details = {"reason": reason, "token_type": token_type}
        if required is not None:
            details["required"] = str(required)
        if available is not None:
            details["available"] = str(available)
        super().__init__("INSUFFICIENT_FUNDS", message, details)


class EncryptionError(ServiceError):
    status = 500

    def __init__(self, message="Failed to encrypt data"):
        super().__init__("ENCRYPTION_ERROR", message)


class DecryptionError(ServiceError):
    status = 500

    def __init__(self, message="Failed to decrypt data"):
        super().__init__("DECRYPTION_ERROR", message)


class GatewayError(ServiceError):
    status = 502

    def __init__(self, message="Ledger node request failed", details=None):
        super().__init__("GATEWAY_ERROR", message, details)


class TransferRejected(ServiceError):
    def __init__(self, reason=None):
        self.reason = reason or "Transaction failed"
        super().__init__("TRANSFER_REJECTED", self.reason)


class ReconciliationError(ServiceError):
    status = 502

    def __init__(self, message="Failed to detect transactions", details=None):
        super().__init__("RECONCILIATION_ERROR", message, details)


class DuplicateResourceError(ServiceError):
    def __init__(self, message="Resource already exists", details=None):
        super().__init__("DUPLICATE_RESOURCE", message, details)


class AuthenticationError(ServiceError):
    status = 401

    def __init__(self, message="Invalid credentials"):
        super().__init__("AUTH_FAILED", message)


class TransferNotRecorded(ServiceError):
    status = 500

    def __init__(self, tx_hash, message="Transfer was broadcast but could not be recorded"):
        self.tx_hash = tx_hash
        super().__init__("TRANSFER_NOT_RECORDED", message, {"tx_hash": tx_hash})
