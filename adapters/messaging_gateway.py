# adapters/messaging_gateway.py

from abc import ABC, abstractmethod
from typing import Optional


class MessagingGateway(ABC):
    """
    Outbound side of the chat service. Every send returns the gateway's
    message identity; failures raise (the caller decides on fallbacks).
    """

    @abstractmethod
    async def send_text(
        self, chat_id: str, text: str, markdown: bool = True, reply_to: Optional[int] = None
    ) -> int:
        pass

    @abstractmethod
    async def send_photo(
        self,
        chat_id: str,
        url: str,
        caption: Optional[str] = None,
        markdown: bool = True,
        reply_to: Optional[int] = None,
    ) -> int:
        pass

    @abstractmethod
    async def send_voice(
        self, chat_id: str, url: str, caption: Optional[str] = None, reply_to: Optional[int] = None
    ) -> int:
        pass

    @abstractmethod
    async def edit_text(self, chat_id: str, message_id: int, text: str, markdown: bool = True) -> None:
        """Fails when the target is not a text message (media needs edit_caption)."""
        pass

    @abstractmethod
    async def edit_caption(self, chat_id: str, message_id: int, caption: str, markdown: bool = True) -> None:
        pass

    @abstractmethod
    async def delete_message(self, chat_id: str, message_id: int) -> None:
        pass

    @abstractmethod
    async def fetch_file_url(self, file_id: str) -> str:
        """Transient download URL for an inbound attachment."""
        pass

    @abstractmethod
    async def download_file(self, file_id: str) -> bytes:
        pass
