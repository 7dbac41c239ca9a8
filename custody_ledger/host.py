"""
Value Host Module

The shared execution environment. It custodies native value for every
identity (people and ledgers alike) and performs value-carrying external
calls: sending value to an identity runs that identity's receiver hook,
which may call back into any ledger before the send returns.
"""

from typing import Callable, Dict, Optional

from .errors import InsufficientNativeFunds, TransferRejected
from .storage import StorageInterface
from .units import format_units, require_unsigned
from .logging_config import get_logger, log_action

# hook(sender, amount) -> None / True to accept, False to reject
ReceiverHook = Callable[[str, int], Optional[bool]]


class ValueHost:
    """
    Native value balances plus receiver hooks

    Balances live in storage so that the atomic frame of whichever
    invocation moved them also covers the movement.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "native_balances"):
        self.storage = storage
        self.table_name = table_name
        self._receivers: Dict[str, ReceiverHook] = {}
        self.logger = get_logger("custody.host")

    def balance_of(self, identity: str) -> int:
        """Native value held for an identity"""
        record = self.storage.load(self.table_name, identity)
        if record:
            return int(record['balance'])
        return 0

    def _set_balance(self, identity: str, balance: int) -> None:
        self.storage.save(self.table_name, identity, {
            'identity': identity,
            'balance': str(balance)
        })

    def mint(self, identity: str, amount: int) -> int:
        """
        Credit native value to an identity out of nothing

        Development faucet; the only way value enters the host.

        Returns:
            New native balance
        """
        require_unsigned(amount)
        with self.storage.atomic():
            balance = self.balance_of(identity) + amount
            self._set_balance(identity, balance)

        log_action(
            self.logger, "info", f"Minted {format_units(amount)} to {identity}",
            user_id=identity, action="mint", resource=f"native:{identity}",
            extra={"amount": str(amount)}
        )
        return balance

    def move(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move value between identities without running any hook

        Raises:
            InsufficientNativeFunds: If the sender holds less than amount
        """
        require_unsigned(amount)
        if amount == 0:
            return

        with self.storage.atomic():
            sender_balance = self.balance_of(sender)
            if sender_balance < amount:
                raise InsufficientNativeFunds(
                    f"{sender} holds {format_units(sender_balance)}, needs {format_units(amount)}"
                )
            self._set_balance(sender, sender_balance - amount)
            self._set_balance(recipient, self.balance_of(recipient) + amount)

    def register_receiver(self, identity: str, hook: ReceiverHook) -> None:
        """Run ``hook(sender, amount)`` whenever value is sent to identity"""
        self._receivers[identity] = hook

    def unregister_receiver(self, identity: str) -> None:
        self._receivers.pop(identity, None)

    def send(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Value-carrying external call

        Moves the value and runs the recipient's hook inside one nested
        frame. The hook may reenter any ledger. If the movement or the hook
        fails, everything done in the frame is discarded.

        Returns:
            True if the transfer went through, False otherwise
        """
        require_unsigned(amount)
        try:
            with self.storage.atomic():
                self.move(sender, recipient, amount)
                hook = self._receivers.get(recipient)
                if hook is not None and hook(sender, amount) is False:
                    raise TransferRejected(f"{recipient} rejected {format_units(amount)} from {sender}")
        except Exception as e:
            log_action(
                self.logger, "warning", f"Transfer from {sender} to {recipient} failed: {e}",
                user_id=recipient, action="send", resource=f"native:{recipient}",
                extra={"sender": sender, "amount": str(amount), "error": type(e).__name__}
            )
            return False

        return True
