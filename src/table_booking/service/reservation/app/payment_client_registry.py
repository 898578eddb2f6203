import asyncio
from typing import Awaitable, Callable

from table_booking.platform.logging.loguru_io import Logger
from table_booking.service.reservation.app.interface.i_payment_processor import IPaymentProcessor


PaymentProcessorFactory = Callable[[str], Awaitable[IPaymentProcessor]]


class PaymentClientRegistry:
    """
    One payment-processor client per public key for the whole session.

    Concurrent callers for the same key await the same pending task, so the
    factory runs once per key. A failed construction is forgotten so the
    next caller can try again.
    """

    def __init__(self, *, factory: PaymentProcessorFactory) -> None:
        self._factory = factory
        self._clients: dict[str, asyncio.Task[IPaymentProcessor]] = {}

    def __contains__(self, public_key: str) -> bool:
        return public_key in self._clients

    async def get(self, *, public_key: str) -> IPaymentProcessor:
        task = self._clients.get(public_key)
        if task is None:
            Logger.base.info(f'💳 [PAYMENT] Creating processor client for key {public_key[:12]}…')
            task = asyncio.ensure_future(self._factory(public_key))
            self._clients[public_key] = task
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._clients.get(public_key) is task:
                del self._clients[public_key]
            raise

    async def aclose(self) -> None:
        tasks = list(self._clients.values())
        self._clients.clear()
        for task in tasks:
            if not task.done():
                task.cancel()
                continue
            if not task.cancelled() and task.exception() is None:
                await task.result().aclose()
