"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Limit and balance denials are NOT exceptions; they are returned as decision
objects by the token engine. These exceptions cover lookups, persistence
conflicts and external providers.
"""

from uuid import UUID


class ProfilerError(Exception):
    """Base exception for all profiler errors."""

    pass


class UserNotFoundError(ProfilerError):
    """Raised when a registered user doesn't exist."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class UserAlreadyExistsError(ProfilerError):
    """Raised when registering an e-mail that is already taken."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"User already exists: {email}")


class InvalidCredentialsError(ProfilerError):
    """Raised when login credentials or a session token are invalid."""

    def __init__(self, message: str = "Invalid email or password") -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class InsufficientTokensError(ProfilerError):
    """Raised when a debit would drive a registered balance negative."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient tokens. Balance: {balance}, Required: {required}")


class ConcurrencyError(ProfilerError):
    """Raised when a conditional balance update keeps losing to concurrent writers."""

    def __init__(self, resource: str, attempts: int) -> None:
        self.resource = resource
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification detected for {resource} after {attempts} attempts"
        )


class ProviderConfigurationError(ProfilerError):
    """Raised when an external provider is requested but not configured."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider not configured: {provider}")


class ProviderResponseError(ProfilerError):
    """Raised when an LLM provider call fails or returns an unusable payload."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.message = message
        super().__init__(f"Failed to analyze text with {provider}: {message}")


class PaymentProviderError(ProfilerError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class WebhookVerificationError(ProfilerError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class InvalidPricingTierError(ProfilerError):
    """Raised when an amount/token pair matches no pricing tier."""

    def __init__(self, amount_cents: int, tokens: int) -> None:
        self.amount_cents = amount_cents
        self.tokens = tokens
        super().__init__(f"Invalid pricing tier: {amount_cents} cents for {tokens} tokens")


class PaymentNotFoundError(ProfilerError):
    """Raised when a payment intent has no local record for the caller."""

    def __init__(self, payment_intent_id: str) -> None:
        self.payment_intent_id = payment_intent_id
        super().__init__(f"Payment not found: {payment_intent_id}")
