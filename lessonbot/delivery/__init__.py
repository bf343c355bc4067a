"""
Outbound delivery: the rate-limited queue and the Telegram transport.
"""

from lessonbot.delivery.queue import DeliveryQueue
from lessonbot.delivery.telegram import TelegramTransport, TransportError

__all__ = ["DeliveryQueue", "TelegramTransport", "TransportError"]
