"""Exception hierarchy for the currency system."""

from __future__ import annotations


class AstorError(Exception):
    """Base class for every error raised by the package."""

    message_format = "{}"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(self.message_format.format(detail))


class UnauthorizedError(AstorError):
    message_format = "Unauthorized access: {}"


class AccountNotFoundError(AstorError):
    message_format = "Account not found: {}"


class AdminNotFoundError(AstorError):
    message_format = "Administrator not found: {}"


class InsufficientFundsError(AstorError):
    message_format = "Insufficient funds for transaction"


class InvalidSignatureError(AstorError):
    message_format = "Invalid signature"


class TransactionValidationError(AstorError):
    message_format = "Transaction validation failed: {}"


class LedgerError(AstorError):
    message_format = "Ledger error: {}"


class SerializationError(AstorError):
    message_format = "Serialization error: {}"


class CryptographicError(AstorError):
    message_format = "Cryptographic error: {}"


class CentralBankError(AstorError):
    message_format = "Central bank error: {}"


class CommercialBankingError(AstorError):
    message_format = "Commercial banking error: {}"


class PaymentError(AstorError):
    message_format = "Payment processing error: {}"


class ComplianceError(AstorError):
    message_format = "Regulatory compliance error: {}"


class KycError(AstorError):
    message_format = "KYC verification failed: {}"


class AmlViolationError(AstorError):
    message_format = "AML violation detected: {}"


class TaxReportingError(AstorError):
    message_format = "Tax reporting error: {}"


class LoanError(AstorError):
    message_format = "Loan processing error: {}"


class CreditError(AstorError):
    message_format = "Credit line error: {}"


class InterestCalculationError(AstorError):
    message_format = "Interest calculation error: {}"


class SecurityViolationError(AstorError):
    message_format = "Security violation: {}"


class NetworkError(AstorError):
    message_format = "Network error: {}"


class DatabaseError(AstorError):
    message_format = "Database error: {}"


class ConversionError(AstorError):
    message_format = "Conversion failed: {}"


class ConfigurationError(AstorError):
    message_format = "Configuration error: {}"


class MonitoringError(AstorError):
    message_format = "Monitoring error: {}"


class NotFoundError(AstorError):
    message_format = "Not found: {}"


class InvalidInputError(AstorError):
    message_format = "Invalid input: {}"