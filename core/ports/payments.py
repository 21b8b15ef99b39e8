from typing import Optional, Protocol


class WalletPort(Protocol):
    async def get_balance(self, user_id: str) -> int: ...

    async def debit(self, user_id: str, amount: int, *, kind: str) -> int: ...

    async def credit(
        self,
        user_id: str,
        amount: int,
        *,
        kind: str,
        external_ref_type: Optional[str] = None,
        external_ref_id: Optional[str] = None,
    ) -> int: ...

    async def release(self, user_id: str, amount: int, *, kind: str) -> int: ...
