"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class SigningError(DomainException):
    """Request could not be signed (e.g. payload is not valid UTF-8)"""

    pass


class InvalidDonationError(DomainException):
    """Donation request failed server-side validation"""

    pass


class MailDeliveryError(DomainException):
    """A single message could not be handed to the mail server"""

    pass


class MailTransportError(MailDeliveryError):
    """Connection, TLS or timeout failure while talking to the mail server"""

    pass


class MailProtocolError(MailDeliveryError):
    """Mail server answered a dialog step with an unexpected reply code"""

    def __init__(self, step: str, code: int, reply: str):
        self.step = step
        self.code = code
        self.reply = reply
        super().__init__(f"{step} rejected with {code}: {reply}")
