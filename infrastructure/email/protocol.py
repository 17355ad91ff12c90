"""Interface the auth service uses to send account email."""

from typing import Optional, Protocol


class EmailProvider(Protocol):
    """Each send returns True once the provider accepted the message.

    Implementations must not raise for delivery problems; the service treats
    email as best-effort and never fails the request because of it.
    """

    async def send_temporary_password_email(
        self, email: str, user_name: Optional[str], temporary_password: str
    ) -> bool: ...

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], reset_url: str
    ) -> bool: ...

    async def send_password_changed_email(
        self, email: str, user_name: Optional[str]
    ) -> bool: ...
